#!/usr/bin/env python3
"""店铺经营洞察 - 命令行入口

读取门店数据库，计算经营洞察并以 JSON 输出：
1. 全部分类的洞察（默认）
2. 跨分类的前 N 条（--limit）
3. 单个分类（--category）
4. 单个顾客的个性化洞察（--customer）

使用方式：
    python app.py

    # 前 5 条高优先级洞察
    python app.py --limit 5 --priority high

    # 指定分类
    python app.py --category revenue-optimization

    # 指定数据库，并先建表写入服务目录
    python app.py --db sqlite:///data/store.db --init

环境变量（在 .env 文件中配置）：
    DATABASE_URL                数据库连接地址
    INSIGHTS_DEADLINE_SECONDS   整体计算截止秒数（默认 10）
    REDIS_URL                   服务分析缓存使用的 Redis 地址（不设置则不缓存）
    REDIS_URL                   服务分析缓存所用的 Redis 地址（不设置则不缓存）
    CURRENCY_SYMBOL             金额符号（默认 $）
    LOG_LEVEL                   日志级别（默认 INFO）
"""
import argparse
import asyncio
import json
import sys

from loguru import logger

from config.settings import settings


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="店铺经营洞察")
    parser.add_argument("--db", default=None,
                        help="数据库连接 URL (默认: settings.database_url)")
    parser.add_argument("--category", default=None,
                        help="只输出指定分类，如 customer-behavior")
    parser.add_argument("--limit", type=int, default=None,
                        help="输出条数上限")
    parser.add_argument("--priority", default=None,
                        help="只输出指定优先级 (critical/high/medium/low/info 或 1-5)")
    parser.add_argument("--customer", type=int, default=None,
                        help="输出指定顾客的个性化洞察")
    parser.add_argument("--init", action="store_true",
                        help="建表并写入配置中的服务目录和员工")
    return parser


async def run(args: argparse.Namespace) -> dict:
    """按参数计算洞察，返回可 JSON 序列化的结果。"""
    from config.business_config import business_config
    from database import DatabaseManager
    from insights import InsightEngine
    from insights.base import to_wire

    db = DatabaseManager(args.db)
    try:
        if args.init:
            db.create_tables()
            db.seed_catalog(business_config.get_service_types())
            db.seed_staff(business_config.get_staff_names())
        logger.info(f"数据库已连接: {db.database_url}")

        engine = InsightEngine(db.visit_store, db.catalog_store)

        if args.customer is not None:
            result = engine.get_customer_insights(args.customer)
            return {
                "customerId": args.customer,
                "insights": [i.to_dict() for i in result.insights],
                "visitHistory": to_wire(result.visit_history),
                "serviceRecommendations": to_wire(result.service_recommendations),
                "nextServiceDue": to_wire(result.next_service_due),
            }

        if args.category:
            insights = await engine.get_insights_by_category(
                args.category, priority=args.priority, limit=args.limit
            )
            return {
                "category": args.category,
                "insights": [i.to_dict() for i in insights],
                "count": len(insights),
            }

        if args.limit is not None:
            insights = await engine.get_top_insights(args.limit, priority=args.priority)
            return {"insights": [i.to_dict() for i in insights], "count": len(insights)}

        all_insights = await engine.get_all_insights(priority=args.priority)
        totals = {c.value: len(v) for c, v in all_insights.items()}
        return {
            "insights": {
                c.value: [i.to_dict() for i in v] for c, v in all_insights.items()
            },
            "totals": totals,
            "total": sum(totals.values()),
        }
    finally:
        db.close()


def main(argv=None) -> int:
    from insights.errors import InsightError

    args = build_parser().parse_args(argv)
    configure_logging(settings.log_level)

    try:
        output = asyncio.run(run(args))
    except InsightError as e:
        logger.error(f"洞察请求失败: {e}")
        print(json.dumps(e.as_dict(), ensure_ascii=False, indent=2))
        return 1
    except ValueError as e:
        logger.error(f"参数错误: {e}")
        return 2

    print(json.dumps(output, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
