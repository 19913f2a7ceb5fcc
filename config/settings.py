"""全局配置管理

所有用户可配置项均通过 .env 文件设置，运行时自动加载到此处。

使用方式：
    1. 手动创建 .env 文件，按需覆盖下列字段
    2. 或直接设置同名环境变量（不区分大小写）
"""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用配置 - 所有字段均可通过 .env 或环境变量覆盖"""

    # ========== 数据库 ==========
    database_url: str = "sqlite:///data/store.db"

    # ========== 洞察引擎 ==========
    insights_deadline_seconds: float = 10.0
    insights_cache_ttl_seconds: int = 300
    redis_url: Optional[str] = None
    customer_history_limit: int = 1000
    staff_visit_limit: int = 2000
    currency_symbol: str = "$"

    # ========== 日志 ==========
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


# 全局配置实例
settings = Settings()
