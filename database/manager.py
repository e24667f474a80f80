"""数据库管理器 - 统一门面（Facade）。

DatabaseManager 是 database 模块的统一入口，负责：

1. 根据配置选择数据服务网关（本地 SQLAlchemy 或远程 REST）
2. 持有实体仓库（EntityStore），供业务层通过显式注入使用
3. 提供连接检测、刷新、建表等基础设施方法

业务服务（定价、订单流转、应收汇总、财务报表）都接收 ``db.store``，
而不是依赖模块级全局对象，测试可以替换为临时数据库或内存网关。
"""
from typing import Dict, Optional

from loguru import logger

from config.settings import settings
from .connection import DatabaseConnection
from .errors import ConfigurationError
from .gateway import TableGateway
from .rest_gateway import RestTableGateway, validate_backend_config
from .sql_gateway import SqlTableGateway
from .store import EntityStore


class DatabaseManager:
    """数据库管理器 - 统一门面。

    Attributes:
        conn: 数据库连接管理器（仅 SQL 后端，REST 后端为 None）。
        gateway: 数据服务网关。
        store: 实体仓库。

    Example::

        db = DatabaseManager("sqlite:///data/lab.db")
        db.create_tables()
        db.check_connection()

        for order in db.store.orders:
            print(order.barcode, order.status.value)
    """

    def __init__(self, database_url: Optional[str] = None,
                 gateway: Optional[TableGateway] = None,
                 backend: Optional[str] = None) -> None:
        """初始化数据库管理器。

        Args:
            database_url: 数据库连接URL。如果为None则使用settings配置。
            gateway: 直接注入的网关（可选，优先级最高）。
            backend: 后端类型 ``sql`` / ``rest``，默认取 settings.backend。

        Raises:
            ConfigurationError: 后端类型未知或远程连接参数非法。
        """
        self.conn: Optional[DatabaseConnection] = None

        if gateway is not None:
            self.gateway = gateway
        else:
            backend = (backend or settings.backend).lower()
            if backend == "sql":
                self.conn = DatabaseConnection(database_url)
                self.gateway = SqlTableGateway(self.conn)
            elif backend == "rest":
                url = validate_backend_config(
                    settings.backend_url, settings.backend_api_key
                )
                self.gateway = RestTableGateway(
                    url, settings.backend_api_key,
                    probe_timeout=settings.probe_timeout_seconds,
                )
            else:
                raise ConfigurationError(f"Unknown backend: {backend}")
            logger.info(f"Using {backend} backend")

        self.store = EntityStore(self.gateway)

    # ================================================================
    # 基础设施方法
    # ================================================================

    def create_tables(self) -> None:
        """创建所有数据库表（幂等操作，仅 SQL 后端）。"""
        if self.conn is None:
            raise ConfigurationError("Schema is managed by the remote backend")
        self.conn.create_tables()

    @property
    def database_url(self) -> Optional[str]:
        """数据库连接URL（REST 后端为 None）。"""
        return self.conn.database_url if self.conn is not None else None

    def check_connection(self) -> Dict[str, int]:
        """检测连通性并加载全部数据。

        Returns:
            各集合的记录数。

        Raises:
            ConnectivityError: 检测失败。
            LoadError: 加载失败。
        """
        return self.store.connect()

    def refresh(self) -> Dict[str, int]:
        """手动刷新快照。"""
        return self.store.reload()

    def close(self) -> None:
        """关闭网关，释放连接资源。"""
        self.gateway.close()
        logger.info("Database connection closed")
