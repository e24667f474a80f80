"""数据层 - 实体仓库与数据服务网关

核心组件：
- DatabaseManager: 统一门面（选择网关、持有实体仓库）
- EntityStore: 内存快照 + 经确认的写入
- TableGateway: 数据服务网关接口（SqlTableGateway / RestTableGateway）
"""
from database.manager import DatabaseManager
from database.store import EntityStore, ConnectionStatus
from database.gateway import TableGateway

__all__ = [
    "DatabaseManager",
    "EntityStore",
    "ConnectionStatus",
    "TableGateway",
]
