"""实体仓库 - 内存快照与经确认的写入

仓库持有八个集合的不可变快照（每个集合一个 tuple），所有查询都是对快照的
纯扫描。批量加载遵循"全有或全无"：任何一个集合失败，本轮刷新作废，
上一份快照保持可用。

写入操作每次都是一次网关往返，只有在网关返回确认后的记录之后才会
更新快照；网关拒绝时抛出 MutationError，快照保持不变。
"""
import threading
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger

from config.lab_config import lab_config
from config.settings import settings
from .barcode import generate_barcode
from .entities import (
    CLINICS, DOCTORS, PROSTHESIS_TYPES, TECHNICIANS,
    ORDERS, PAYMENTS, EXPENSES, USERS,
    Clinic, Doctor, EntitySchema, Expense, Order, OrderStatus,
    Payment, ProsthesisType, Technician, User, as_int, as_money,
)
from .errors import (
    ConnectivityError, GatewayError, InvalidTransitionError,
    LoadError, MutationError, ValidationError,
)
from .gateway import TableGateway
from .models import utcnow


class ConnectionStatus(str, Enum):
    CHECKING = "checking"
    CONNECTED = "connected"
    ERROR = "error"


# (集合名, 字段映射, 排序字段, 是否倒序)
LOAD_PLAN: Tuple[Tuple[str, EntitySchema, str, bool], ...] = (
    ("clinics", CLINICS, "name", False),
    ("doctors", DOCTORS, "name", False),
    ("prosthesis_types", PROSTHESIS_TYPES, "name", False),
    ("technicians", TECHNICIANS, "name", False),
    ("orders", ORDERS, "created_at", True),
    ("payments", PAYMENTS, "date", True),
    ("expenses", EXPENSES, "date", True),
    ("users", USERS, "name", False),
)

# 新记录插入到集合头部的表（与加载时的倒序保持一致）
PREPEND_TABLES = ("orders", "payments", "expenses")

# 交付后不可再修改的订单字段
FINAL_ORDER_FIELDS = frozenset({
    "status", "unit_count", "final_price", "actual_delivery_date", "has_model",
})

# 仅能随交付一次性写入的订单字段
DELIVERY_FIELDS = frozenset({"final_price", "actual_delivery_date", "has_model"})

BARCODE_ATTEMPTS = 5


def _entity_values(entity: Any) -> Dict[str, Any]:
    return {name: getattr(entity, name) for name in type(entity).__dataclass_fields__}


class EntityStore:
    """实体仓库

    Attributes:
        gateway: 数据服务网关。
        status: 当前连接状态。
        last_error: 最近一次失败的说明。
        loaded_at: 最近一次成功加载的时间。

    Example:
        ```python
        store = EntityStore(SqlTableGateway(DatabaseConnection()))
        store.reload()
        doctor = store.get_doctor(order.doctor_id)
        ```
    """

    def __init__(self, gateway: TableGateway,
                 barcode_factory: Optional[Callable[[], str]] = None,
                 expense_categories: Optional[List[str]] = None) -> None:
        self.gateway = gateway
        self.barcode_factory = barcode_factory or (
            lambda: generate_barcode(settings.barcode_prefix)
        )
        self.expense_categories = list(
            expense_categories or lab_config.get_expense_categories()
        )

        self._lock = threading.RLock()
        self._collections: Dict[str, Tuple[Any, ...]] = {
            name: () for name, _, _, _ in LOAD_PLAN
        }
        self.status = ConnectionStatus.CHECKING
        self.last_error: Optional[str] = None
        self.loaded_at: Optional[datetime] = None

    # ================================================================
    # 快照访问
    # ================================================================

    @property
    def clinics(self) -> Tuple[Clinic, ...]:
        return self._collections["clinics"]

    @property
    def doctors(self) -> Tuple[Doctor, ...]:
        return self._collections["doctors"]

    @property
    def prosthesis_types(self) -> Tuple[ProsthesisType, ...]:
        return self._collections["prosthesis_types"]

    @property
    def technicians(self) -> Tuple[Technician, ...]:
        return self._collections["technicians"]

    @property
    def orders(self) -> Tuple[Order, ...]:
        return self._collections["orders"]

    @property
    def payments(self) -> Tuple[Payment, ...]:
        return self._collections["payments"]

    @property
    def expenses(self) -> Tuple[Expense, ...]:
        return self._collections["expenses"]

    @property
    def users(self) -> Tuple[User, ...]:
        return self._collections["users"]

    @property
    def is_connected(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED

    # ================================================================
    # 加载与连接
    # ================================================================

    def connect(self) -> Dict[str, int]:
        """连通性检测后执行首次加载。

        Returns:
            各集合的记录数。

        Raises:
            ConnectivityError: 检测失败。
            LoadError: 加载失败。
        """
        with self._lock:
            self.status = ConnectionStatus.CHECKING
        try:
            self.gateway.probe()
        except ConnectivityError as e:
            with self._lock:
                self.status = ConnectionStatus.ERROR
                self.last_error = str(e)
            logger.error(f"Connection check failed [{e.category}]: {e}")
            raise
        return self.reload()

    def reload(self) -> Dict[str, int]:
        """重新加载全部集合（全有或全无）。

        所有集合都读取并转换成功后才一次性替换快照。

        Returns:
            各集合的记录数。

        Raises:
            LoadError: 任一集合读取或转换失败，快照保持不变。
        """
        loaded: Dict[str, Tuple[Any, ...]] = {}
        for name, schema, order_by, descending in LOAD_PLAN:
            try:
                rows = self.gateway.select(name, order_by=order_by,
                                           descending=descending)
                loaded[name] = tuple(schema.from_row(row) for row in rows)
            except (GatewayError, ValueError) as e:
                with self._lock:
                    self.status = ConnectionStatus.ERROR
                    self.last_error = f"{name}: {e}"
                logger.error(f"Reload aborted while loading {name}: {e}")
                raise LoadError(name, str(e)) from e

        with self._lock:
            self._collections = loaded
            self.status = ConnectionStatus.CONNECTED
            self.last_error = None
            self.loaded_at = utcnow()

        counts = {name: len(items) for name, items in loaded.items()}
        logger.info(f"Snapshot loaded: {counts}")
        return counts

    def refresh_if_connected(self) -> bool:
        """仅在已连接状态下刷新快照。

        Returns:
            是否执行了刷新。
        """
        if not self.is_connected:
            logger.debug(f"Skip refresh, status is {self.status.value}")
            return False
        self.reload()
        return True

    # ================================================================
    # 查询
    # ================================================================

    @staticmethod
    def _by_id(items: Tuple[Any, ...], record_id: Optional[str]) -> Optional[Any]:
        if not record_id:
            return None
        for item in items:
            if item.id == record_id:
                return item
        return None

    def get_clinic(self, clinic_id: Optional[str]) -> Optional[Clinic]:
        return self._by_id(self.clinics, clinic_id)

    def get_doctor(self, doctor_id: Optional[str]) -> Optional[Doctor]:
        return self._by_id(self.doctors, doctor_id)

    def get_prosthesis_type(self, type_id: Optional[str]) -> Optional[ProsthesisType]:
        return self._by_id(self.prosthesis_types, type_id)

    def get_technician(self, technician_id: Optional[str]) -> Optional[Technician]:
        return self._by_id(self.technicians, technician_id)

    def get_order(self, order_id: Optional[str]) -> Optional[Order]:
        return self._by_id(self.orders, order_id)

    def get_user(self, user_id: Optional[str]) -> Optional[User]:
        return self._by_id(self.users, user_id)

    def get_order_by_barcode(self, barcode: str) -> Optional[Order]:
        for order in self.orders:
            if order.barcode == barcode:
                return order
        return None

    def doctors_by_clinic(self, clinic_id: str) -> Tuple[Doctor, ...]:
        return tuple(d for d in self.doctors if d.clinic_id == clinic_id)

    def orders_by_doctor(self, doctor_id: str) -> Tuple[Order, ...]:
        return tuple(o for o in self.orders if o.doctor_id == doctor_id)

    def payments_by_doctor(self, doctor_id: str) -> Tuple[Payment, ...]:
        return tuple(p for p in self.payments if p.doctor_id == doctor_id)

    def orders_by_technician(self, technician_id: str) -> Tuple[Order, ...]:
        return tuple(o for o in self.orders if o.technician_id == technician_id)

    def active_technicians(self) -> Tuple[Technician, ...]:
        return tuple(t for t in self.technicians if t.is_active)

    def search_orders(self, text: Optional[str] = None,
                      status: Optional[OrderStatus] = None) -> Tuple[Order, ...]:
        """按患者姓名/条码（不区分大小写的包含匹配）和状态筛选订单。"""
        needle = (text or "").strip().lower()
        result = []
        for order in self.orders:
            if status is not None and order.status != OrderStatus(status):
                continue
            if needle and needle not in order.patient_name.lower() \
                    and needle not in order.barcode.lower():
                continue
            result.append(order)
        return tuple(result)

    # ================================================================
    # 写入基础操作
    # ================================================================

    def _swap(self, table: str, items: Tuple[Any, ...]) -> None:
        with self._lock:
            self._collections = {**self._collections, table: items}

    def _insert(self, schema: EntitySchema, values: Dict[str, Any]) -> Any:
        row = schema.to_row(values, for_insert=True)
        try:
            confirmed = self.gateway.insert(schema.table, row)
        except GatewayError as e:
            logger.error(f"Insert into {schema.table} rejected: {e}")
            raise MutationError(schema.table, "insert", str(e)) from e

        entity = schema.from_row(confirmed)
        with self._lock:
            current = self._collections[schema.table]
            if schema.table in PREPEND_TABLES:
                items = (entity,) + current
            else:
                items = current + (entity,)
            self._swap(schema.table, items)
        logger.info(f"Created {schema.table} record {entity.id}")
        return entity

    def _update(self, schema: EntitySchema, record_id: str,
                changes: Dict[str, Any]) -> Any:
        if not changes:
            raise ValidationError(f"No changes given for {schema.table}/{record_id}")
        row = schema.to_row(changes)
        try:
            confirmed = self.gateway.update(schema.table, record_id, row)
        except GatewayError as e:
            logger.error(f"Update {schema.table}/{record_id} rejected: {e}")
            raise MutationError(schema.table, "update", str(e)) from e
        if confirmed is None:
            raise MutationError(schema.table, "update", f"record {record_id} not found")

        with self._lock:
            current = self._collections[schema.table]
            existing = self._by_id(current, record_id)
            merged = _entity_values(existing) if existing is not None else {}
            merged.update(confirmed)
            entity = schema.from_row(merged)
            if existing is None:
                items = current + (entity,)
            else:
                items = tuple(entity if item.id == record_id else item
                              for item in current)
            self._swap(schema.table, items)
        logger.info(f"Updated {schema.table} record {record_id}: {sorted(row)}")
        return entity

    def _delete(self, schema: EntitySchema, record_id: str) -> bool:
        try:
            deleted = self.gateway.delete(schema.table, record_id)
        except GatewayError as e:
            logger.error(f"Delete {schema.table}/{record_id} rejected: {e}")
            raise MutationError(schema.table, "delete", str(e)) from e

        if deleted:
            with self._lock:
                current = self._collections[schema.table]
                self._swap(schema.table,
                           tuple(item for item in current if item.id != record_id))
            logger.info(f"Deleted {schema.table} record {record_id}")
        else:
            logger.warning(f"Delete {schema.table}/{record_id}: record not found")
        return deleted

    # ================================================================
    # 校验辅助
    # ================================================================

    def _require(self, found: Optional[Any], kind: str, record_id: Any) -> Any:
        if found is None:
            raise ValidationError(f"{kind} not found: {record_id}")
        return found

    def _check_order_refs(self, values: Dict[str, Any]) -> None:
        if "doctor_id" in values:
            self._require(self.get_doctor(values["doctor_id"]),
                          "Doctor", values["doctor_id"])
        if "prosthesis_type_id" in values:
            self._require(self.get_prosthesis_type(values["prosthesis_type_id"]),
                          "Prosthesis type", values["prosthesis_type_id"])
        if values.get("technician_id"):
            self._require(self.get_technician(values["technician_id"]),
                          "Technician", values["technician_id"])

    @staticmethod
    def _check_delivery_fields(order: Order, changes: Dict[str, Any]) -> None:
        given = DELIVERY_FIELDS & set(changes)
        if changes.get("status") == OrderStatus.DELIVERED:
            missing = DELIVERY_FIELDS - given
            if missing:
                raise InvalidTransitionError(
                    f"Order {order.barcode}: delivery requires {sorted(missing)}"
                )
        elif given:
            raise InvalidTransitionError(
                f"Order {order.barcode} is not delivered, {sorted(given)} are set on delivery"
            )

    def _check_username(self, username: Any, exclude_id: Optional[str] = None) -> None:
        for user in self.users:
            if user.username == username and user.id != exclude_id:
                raise ValidationError(f"Username already exists: {username}")

    def _check_category(self, category: Any) -> None:
        if category not in self.expense_categories:
            raise ValidationError(
                f"Unknown expense category: {category}, "
                f"expected one of {self.expense_categories}"
            )

    def _check_positive(self, amount: Any, what: str) -> None:
        if as_money(amount) <= 0:
            raise ValidationError(f"{what} must be positive: {amount}")

    def _new_barcode(self) -> str:
        for _ in range(BARCODE_ATTEMPTS):
            barcode = self.barcode_factory()
            if self.get_order_by_barcode(barcode) is None:
                return barcode
            logger.warning(f"Barcode collision on {barcode}, regenerating")
        raise MutationError("orders", "insert",
                            f"no unique barcode after {BARCODE_ATTEMPTS} attempts")

    # ================================================================
    # 诊所 / 医生
    # ================================================================

    def add_clinic(self, **fields: Any) -> Clinic:
        return self._insert(CLINICS, fields)

    def update_clinic(self, clinic_id: str, **changes: Any) -> Clinic:
        return self._update(CLINICS, clinic_id, changes)

    def add_doctor(self, **fields: Any) -> Doctor:
        self._require(self.get_clinic(fields.get("clinic_id")),
                      "Clinic", fields.get("clinic_id"))
        return self._insert(DOCTORS, fields)

    def update_doctor(self, doctor_id: str, **changes: Any) -> Doctor:
        if "clinic_id" in changes:
            self._require(self.get_clinic(changes["clinic_id"]),
                          "Clinic", changes["clinic_id"])
        return self._update(DOCTORS, doctor_id, changes)

    # ================================================================
    # 修复体类型 / 技师
    # ================================================================

    def add_prosthesis_type(self, **fields: Any) -> ProsthesisType:
        return self._insert(PROSTHESIS_TYPES, fields)

    def update_prosthesis_type(self, type_id: str, **changes: Any) -> ProsthesisType:
        return self._update(PROSTHESIS_TYPES, type_id, changes)

    def add_technician(self, **fields: Any) -> Technician:
        return self._insert(TECHNICIANS, fields)

    def update_technician(self, technician_id: str, **changes: Any) -> Technician:
        return self._update(TECHNICIANS, technician_id, changes)

    # ================================================================
    # 订单
    # ================================================================

    def add_order(self, **fields: Any) -> Order:
        """创建订单。

        条码由仓库生成，状态固定为 waiting，has_model 固定为 False；
        交付相关字段不允许在创建时写入。

        Args:
            **fields: 订单字段，至少包含 patient_name、doctor_id、
                prosthesis_type_id、arrival_date、delivery_date、total_price。

        Returns:
            网关确认后的订单。

        Raises:
            ValidationError: 引用不存在、件数非法或写入了受保护字段。
            MutationError: 网关拒绝写入。
        """
        protected = {"barcode", "status", "final_price", "actual_delivery_date",
                     "completion_date", "has_model"} & set(fields)
        if protected:
            raise ValidationError(
                f"Fields are assigned by the lab workflow: {sorted(protected)}"
            )
        for key in ("doctor_id", "prosthesis_type_id"):
            if not fields.get(key):
                raise ValidationError(f"Missing required orders field: {key}")
        self._check_order_refs(fields)

        unit_count = as_int(fields.get("unit_count", 1))
        if unit_count < 1:
            raise ValidationError(f"Unit count must be at least 1: {unit_count}")

        values = {
            **fields,
            "unit_count": unit_count,
            "barcode": self._new_barcode(),
            "status": OrderStatus.WAITING,
            "has_model": False,
        }
        return self._insert(ORDERS, values)

    def update_order(self, order_id: str, **changes: Any) -> Order:
        """更新订单。

        Raises:
            ValidationError: 订单不存在、修改条码或引用不存在。
            InvalidTransitionError: 修改已交付订单的终态字段，
                交付时未同时写入交付字段，或未交付时写入交付字段。
            MutationError: 网关拒绝写入。
        """
        order = self._require(self.get_order(order_id), "Order", order_id)
        if "barcode" in changes:
            raise ValidationError("Order barcode cannot be changed")
        if order.is_delivered:
            locked = FINAL_ORDER_FIELDS & set(changes)
            if locked:
                raise InvalidTransitionError(
                    f"Order {order.barcode} is delivered, {sorted(locked)} are final"
                )
        else:
            self._check_delivery_fields(order, changes)
        self._check_order_refs(changes)
        return self._update(ORDERS, order_id, changes)

    # ================================================================
    # 收款 / 支出
    # ================================================================

    def add_payment(self, **fields: Any) -> Payment:
        self._require(self.get_doctor(fields.get("doctor_id")),
                      "Doctor", fields.get("doctor_id"))
        if fields.get("order_id"):
            self._require(self.get_order(fields["order_id"]),
                          "Order", fields["order_id"])
        self._check_positive(fields.get("amount"), "Payment amount")
        return self._insert(PAYMENTS, fields)

    def add_expense(self, **fields: Any) -> Expense:
        self._check_category(fields.get("category"))
        self._check_positive(fields.get("amount"), "Expense amount")
        return self._insert(EXPENSES, fields)

    def update_expense(self, expense_id: str, **changes: Any) -> Expense:
        if "category" in changes:
            self._check_category(changes["category"])
        if "amount" in changes:
            self._check_positive(changes["amount"], "Expense amount")
        return self._update(EXPENSES, expense_id, changes)

    def delete_expense(self, expense_id: str) -> bool:
        return self._delete(EXPENSES, expense_id)

    # ================================================================
    # 系统账号
    # ================================================================

    def add_user(self, **fields: Any) -> User:
        self._check_username(fields.get("username"))
        return self._insert(USERS, fields)

    def update_user(self, user_id: str, **changes: Any) -> User:
        if "username" in changes:
            self._check_username(changes["username"], exclude_id=user_id)
        return self._update(USERS, user_id, changes)

    def delete_user(self, user_id: str) -> bool:
        return self._delete(USERS, user_id)
