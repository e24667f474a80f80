"""基于 SQLAlchemy 的数据服务网关。

把 TableGateway 的表级操作映射到 ORM 模型上，适用于单机部署（SQLite）
或直连关系型数据库（PostgreSQL）的场景，测试也使用它。
"""
from typing import Any, Dict, List, Optional, Type

from loguru import logger
from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError

from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .errors import ConnectivityError, GatewayError
from .gateway import Row, TableGateway
from .models import Base, TABLES


def _to_row(record: Base) -> Row:
    return {column.name: getattr(record, column.name)
            for column in record.__table__.columns}


class SqlTableGateway(BaseCRUD, TableGateway):
    """关系型数据库网关。

    Attributes:
        conn: 数据库连接管理器。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def _model(self, table: str) -> Type[Base]:
        model = TABLES.get(table)
        if model is None:
            raise GatewayError(f"Unknown table: {table}")
        return model

    def _check_columns(self, model: Type[Base], fields: Dict[str, Any]) -> None:
        columns = set(model.__table__.columns.keys())
        unknown = set(fields) - columns
        if unknown:
            raise GatewayError(
                f"Unknown columns for {model.__tablename__}: {sorted(unknown)}"
            )

    def select(self, table: str, order_by: Optional[str] = None,
               descending: bool = False) -> List[Row]:
        model = self._model(table)
        if order_by:
            self._check_columns(model, {order_by: None})
        try:
            records = self.get_all(model, order_by=order_by, descending=descending)
        except SQLAlchemyError as e:
            logger.error(f"Select {table} failed: {e}")
            raise GatewayError(str(e)) from e
        return [_to_row(r) for r in records]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Row]:
        model = self._model(table)
        self._check_columns(model, filters)
        try:
            records = self.get_all(model, filters=filters)
        except SQLAlchemyError as e:
            logger.error(f"Find in {table} failed: {e}")
            raise GatewayError(str(e)) from e
        return [_to_row(r) for r in records]

    def insert(self, table: str, row: Row) -> Row:
        model = self._model(table)
        self._check_columns(model, row)
        try:
            record = self.create(model, **row)
        except SQLAlchemyError as e:
            logger.error(f"Insert into {table} failed: {e}")
            raise GatewayError(str(e)) from e
        return _to_row(record)

    def update(self, table: str, record_id: str, changes: Row) -> Optional[Row]:
        model = self._model(table)
        self._check_columns(model, changes)
        try:
            record = self.update_by_id(model, record_id, **changes)
        except SQLAlchemyError as e:
            logger.error(f"Update {table}/{record_id} failed: {e}")
            raise GatewayError(str(e)) from e
        return _to_row(record) if record is not None else None

    def delete(self, table: str, record_id: str) -> bool:
        model = self._model(table)
        try:
            return self.delete_by_id(model, record_id)
        except SQLAlchemyError as e:
            logger.error(f"Delete {table}/{record_id} failed: {e}")
            raise GatewayError(str(e)) from e

    def probe(self) -> None:
        """执行 ``SELECT 1`` 并确认所有业务表已创建。

        Raises:
            ConnectivityError: 数据库不可达（UNREACHABLE）或缺表（MISSING_SCHEMA）。
        """
        try:
            with self.conn.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
                existing = set(inspect(connection).get_table_names())
        except SQLAlchemyError as e:
            raise ConnectivityError(ConnectivityError.UNREACHABLE, str(e)) from e

        missing = [table for table in TABLES if table not in existing]
        if missing:
            raise ConnectivityError(
                ConnectivityError.MISSING_SCHEMA, ", ".join(missing)
            )

    def close(self) -> None:
        self.conn.close()
