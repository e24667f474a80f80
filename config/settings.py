"""全局配置管理

所有用户可配置项均通过 .env 文件设置，运行时自动加载到此处。
默认使用本地 SQLite 作为数据后端；生产环境切换为远程 REST 数据服务。

使用方式：
    1. 运行 python scripts/setup_env.py 生成 .env 文件
    2. 或手动创建 .env 文件（字段见下方 Settings）
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用配置 - 所有字段均可通过 .env 或环境变量覆盖"""

    # ========== 数据后端 ==========
    backend: str = "sql"  # sql / rest
    database_url: str = "sqlite:///data/lab.db"
    backend_url: str = ""
    backend_api_key: str = ""

    # ========== 同步与连接 ==========
    refresh_interval_seconds: int = 30
    probe_timeout_seconds: float = 15.0

    # ========== 业务策略 ==========
    commission_rate: float = 0.10
    revenue_date_basis: str = "arrival_date"
    commission_date_basis: str = "completion_date"
    transition_policy: str = "permissive"  # permissive / strict
    missing_type_policy: str = "zero_price"  # zero_price / raise
    barcode_prefix: str = "BL"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


# 全局配置实例
settings = Settings()
