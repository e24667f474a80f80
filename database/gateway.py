"""数据服务网关接口 - 用于解耦持久化后端

数据服务对外暴露若干"表"（clinics、doctors、orders ...），支持
列表/过滤/排序、插入、按 id 更新、按 id 删除。记录以下划线命名的字典表示。

新的后端只需要实现这个接口，就可以替换持久化方式，
而不需要修改实体仓库、订单流转、汇总统计等核心代码。
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

Row = Dict[str, Any]


class TableGateway(ABC):
    """数据服务网关抽象基类

    实现类需要把底层故障转换为 GatewayError（或其子类 ConnectivityError）。
    """

    @abstractmethod
    def select(self, table: str, order_by: Optional[str] = None,
               descending: bool = False) -> List[Row]:
        """
        读取整张表

        Args:
            table: 表名
            order_by: 排序字段（可选）
            descending: 是否倒序

        Returns:
            记录列表
        """
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Row]:
        """
        按等值条件过滤

        Args:
            table: 表名
            filters: 字段名 → 值

        Returns:
            匹配的记录列表
        """
        pass

    @abstractmethod
    def insert(self, table: str, row: Row) -> Row:
        """
        插入一条记录

        Returns:
            数据服务确认后的完整记录（含 id 与时间戳）
        """
        pass

    @abstractmethod
    def update(self, table: str, record_id: str, changes: Row) -> Optional[Row]:
        """
        按 id 更新记录

        Returns:
            更新后的完整记录，记录不存在返回 None
        """
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """
        按 id 删除记录

        Returns:
            是否删除了记录
        """
        pass

    @abstractmethod
    def probe(self) -> None:
        """
        连通性检测

        Raises:
            ConnectivityError: 数据服务不可用
        """
        pass

    def close(self) -> None:
        """释放底层资源"""
        pass
