"""初始化数据库"""
import sys
import os

# 添加项目根目录到路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import DatabaseManager
from config.business_config import business_config
from loguru import logger


def init_database(database_url=None):
    """初始化数据库和种子数据"""
    logger.info("Initializing database...")

    db = DatabaseManager(database_url)
    try:
        logger.info("Creating tables...")
        db.create_tables()

        # 服务目录和员工（从 business_config 获取）
        logger.info("Inserting seed data...")
        db.seed_catalog(business_config.get_service_types())
        db.seed_staff(business_config.get_staff_names())
        for entry in db.get_catalog():
            logger.info(f"Service: {entry['name']} ({entry['price']})")
    finally:
        db.close()

    logger.info("Database initialization completed!")


if __name__ == "__main__":
    init_database(sys.argv[1] if len(sys.argv) > 1 else None)
