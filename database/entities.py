"""领域实体与逐表字段映射。

实体是不可变的 dataclass，内存快照中的每条记录都是一个实体实例，
修改一律通过 dataclasses.replace 产生新对象。

每张表都有一份显式的字段映射（EntitySchema），负责：
- from_row：把数据服务返回的记录（下划线命名，值可能是字符串）转换为实体
- to_row：把写入参数校验并转换为数据服务可接受的记录
未声明的字段一律拒绝，避免拼写错误被静默忽略。
"""
from dataclasses import dataclass, field, fields as dataclass_fields
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, Generic, Mapping, Optional, Tuple, Type, TypeVar

from .case import to_camel_keys
from .errors import ValidationError


class OrderStatus(str, Enum):
    """订单状态"""
    WAITING = "waiting"            # 待处理
    IN_PROGRESS = "in-progress"    # 制作中
    COMPLETED = "completed"        # 已完成
    DELIVERED = "delivered"        # 已交付（终态）


class PaymentType(str, Enum):
    """收付记录类型"""
    PAYMENT = "payment"   # 收款
    DEBT = "debt"         # 手工登记的欠款调整


class UserRole(str, Enum):
    """系统角色"""
    ADMIN = "admin"
    TECHNICIAN = "technician"
    ACCOUNTANT = "accountant"


ZERO = Decimal("0")


# ================================================================
# 字段转换函数
# ================================================================

def as_text(value: Any) -> str:
    return "" if value is None else str(value)


def as_opt_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except InvalidOperation:
            raise ValidationError(f"Invalid amount: {value!r}")
    # 拒绝 NaN / Infinity
    if not value.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return value


def as_money(value: Any) -> Decimal:
    if value is None or value == "":
        return ZERO
    return _decimal(value)


def as_opt_money(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return _decimal(value)


def as_int(value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid integer: {value!r}")


def as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def as_opt_date(value: Any) -> Optional[date]:
    """解析日期值。

    支持 date / datetime 对象，以及 ``YYYY-MM-DD`` 或带时间部分的 ISO 字符串。

    Raises:
        ValidationError: 格式无效。
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            if len(value) > 10:
                return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
            return datetime.strptime(value, "%Y-%m-%d").date()
        except ValueError:
            raise ValidationError(
                f"Invalid date format: {value}, expected YYYY-MM-DD"
            )
    raise ValidationError(f"Invalid date value: {value!r}")


def as_opt_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"Invalid datetime format: {value}")
    raise ValidationError(f"Invalid datetime value: {value!r}")


def _enum_loader(enum_cls: Type[Enum], default: Enum) -> Callable[[Any], Enum]:
    def _load(value: Any) -> Enum:
        if value is None or value == "":
            return default
        try:
            return enum_cls(value)
        except ValueError:
            raise ValidationError(
                f"Invalid {enum_cls.__name__} value: {value!r}"
            )
    return _load


as_status = _enum_loader(OrderStatus, OrderStatus.WAITING)
as_payment_type = _enum_loader(PaymentType, PaymentType.PAYMENT)
as_role = _enum_loader(UserRole, UserRole.TECHNICIAN)


# ================================================================
# 实体定义
# ================================================================

@dataclass(frozen=True)
class Clinic:
    id: str
    name: str = ""
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    logo: Optional[str] = None
    current_balance: Decimal = ZERO  # 冗余字段，不作为余额依据
    total_debt: Decimal = ZERO
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Doctor:
    id: str
    name: str = ""
    clinic_id: str = ""
    phone: Optional[str] = None
    email: Optional[str] = None
    photo: Optional[str] = None
    current_balance: Decimal = ZERO
    total_debt: Decimal = ZERO
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class ProsthesisType:
    id: str
    name: str = ""
    base_price: Decimal = ZERO
    model_price: Optional[Decimal] = None
    category: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Technician:
    id: str
    name: str = ""
    username: str = ""
    password: str = field(default="", repr=False)
    monthly_quota: int = 0
    completed_jobs: int = 0
    salary: Decimal = ZERO
    is_active: bool = True
    photo: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Order:
    id: str
    barcode: str = ""
    patient_name: str = ""
    doctor_id: str = ""
    prosthesis_type_id: str = ""
    status: OrderStatus = OrderStatus.WAITING
    technician_id: Optional[str] = None
    arrival_date: Optional[date] = None
    delivery_date: Optional[date] = None
    completion_date: Optional[datetime] = None
    actual_delivery_date: Optional[date] = None
    notes: Optional[str] = None
    cost: Optional[Decimal] = None
    unit_count: int = 1
    total_price: Decimal = ZERO
    final_price: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    is_paid: bool = False
    is_digital_measurement: bool = False
    is_manual_measurement: bool = False
    has_model: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_delivered(self) -> bool:
        return self.status == OrderStatus.DELIVERED


@dataclass(frozen=True)
class Payment:
    id: str
    doctor_id: str = ""
    order_id: Optional[str] = None
    amount: Decimal = ZERO
    date: Optional[date] = None
    type: PaymentType = PaymentType.PAYMENT
    description: str = ""
    invoice_number: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Expense:
    id: str
    date: Optional[date] = None
    category: str = ""
    description: str = ""
    amount: Decimal = ZERO
    supplier: Optional[str] = None
    invoice_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class User:
    id: str
    username: str = ""
    password: str = field(default="", repr=False)
    role: UserRole = UserRole.TECHNICIAN
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool = True
    can_view_prices: bool = False
    photo: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ================================================================
# 字段映射
# ================================================================

E = TypeVar("E")

READ_ONLY_FIELDS = ("id", "created_at", "updated_at")

_TIMESTAMPS = {
    "id": as_text,
    "created_at": as_opt_datetime,
    "updated_at": as_opt_datetime,
}


class EntitySchema(Generic[E]):
    """单张表的显式字段映射。

    Attributes:
        entity_cls: 实体类。
        table: 数据服务中的表名。
        fields: 字段名 → 转换函数。
        required: 插入时必须提供的字段。
    """

    def __init__(self, entity_cls: Type[E], table: str,
                 fields: Dict[str, Callable[[Any], Any]],
                 required: Tuple[str, ...] = ()) -> None:
        self.entity_cls = entity_cls
        self.table = table
        self.fields = {**_TIMESTAMPS, **fields}
        self.required = required

        declared = {f.name for f in dataclass_fields(entity_cls)}
        if declared != set(self.fields):
            raise TypeError(
                f"{table} mapping does not match {entity_cls.__name__}: "
                f"{sorted(declared ^ set(self.fields))}"
            )

    def from_row(self, row: Mapping[str, Any]) -> E:
        """数据服务记录 → 实体。

        忽略映射之外的列；缺失或为 null 的列取实体字段的默认值。

        Raises:
            ValidationError: 记录缺少 id 或字段值非法。
        """
        if row.get("id") is None:
            raise ValidationError(f"{self.table} row without id")
        return self.entity_cls(**{
            name: load(row[name]) for name, load in self.fields.items()
            if row.get(name) is not None
        })

    def to_row(self, values: Mapping[str, Any],
               for_insert: bool = False) -> Dict[str, Any]:
        """写入参数 → 数据服务记录。

        Args:
            values: 字段名 → 值。
            for_insert: 是否为插入（会检查必填字段）。

        Raises:
            ValidationError: 未知字段、只读字段、必填字段缺失或值非法。
        """
        unknown = set(values) - set(self.fields)
        if unknown:
            raise ValidationError(
                f"Unknown {self.table} fields: {sorted(unknown)}"
            )
        read_only = set(values) & set(READ_ONLY_FIELDS)
        if read_only:
            raise ValidationError(
                f"Read-only {self.table} fields: {sorted(read_only)}"
            )
        if for_insert:
            missing = [
                name for name in self.required
                if values.get(name) is None or values.get(name) == ""
            ]
            if missing:
                raise ValidationError(
                    f"Missing required {self.table} fields: {missing}"
                )

        row = {}
        for name, value in values.items():
            loaded = self.fields[name](value)
            row[name] = loaded.value if isinstance(loaded, Enum) else loaded
        return row


CLINICS = EntitySchema(Clinic, "clinics", {
    "name": as_text,
    "address": as_opt_text,
    "phone": as_opt_text,
    "email": as_opt_text,
    "logo": as_opt_text,
    "current_balance": as_money,
    "total_debt": as_money,
}, required=("name",))

DOCTORS = EntitySchema(Doctor, "doctors", {
    "name": as_text,
    "clinic_id": as_text,
    "phone": as_opt_text,
    "email": as_opt_text,
    "photo": as_opt_text,
    "current_balance": as_money,
    "total_debt": as_money,
}, required=("name", "clinic_id"))

PROSTHESIS_TYPES = EntitySchema(ProsthesisType, "prosthesis_types", {
    "name": as_text,
    "base_price": as_money,
    "model_price": as_opt_money,
    "category": as_opt_text,
}, required=("name", "base_price"))

TECHNICIANS = EntitySchema(Technician, "technicians", {
    "name": as_text,
    "username": as_text,
    "password": as_text,
    "monthly_quota": as_int,
    "completed_jobs": as_int,
    "salary": as_money,
    "is_active": as_bool,
    "photo": as_opt_text,
    "phone": as_opt_text,
    "email": as_opt_text,
}, required=("name", "username", "password"))

ORDERS = EntitySchema(Order, "orders", {
    "barcode": as_text,
    "patient_name": as_text,
    "doctor_id": as_text,
    "prosthesis_type_id": as_text,
    "status": as_status,
    "technician_id": as_opt_text,
    "arrival_date": as_opt_date,
    "delivery_date": as_opt_date,
    "completion_date": as_opt_datetime,
    "actual_delivery_date": as_opt_date,
    "notes": as_opt_text,
    "cost": as_opt_money,
    "unit_count": as_int,
    "total_price": as_money,
    "final_price": as_opt_money,
    "discount_amount": as_opt_money,
    "is_paid": as_bool,
    "is_digital_measurement": as_bool,
    "is_manual_measurement": as_bool,
    "has_model": as_bool,
}, required=(
    "barcode", "patient_name", "doctor_id", "prosthesis_type_id",
    "arrival_date", "delivery_date", "unit_count", "total_price",
))

PAYMENTS = EntitySchema(Payment, "payments", {
    "doctor_id": as_text,
    "order_id": as_opt_text,
    "amount": as_money,
    "date": as_opt_date,
    "type": as_payment_type,
    "description": as_text,
    "invoice_number": as_opt_text,
}, required=("doctor_id", "amount", "date"))

EXPENSES = EntitySchema(Expense, "expenses", {
    "date": as_opt_date,
    "category": as_text,
    "description": as_text,
    "amount": as_money,
    "supplier": as_opt_text,
    "invoice_number": as_opt_text,
    "notes": as_opt_text,
}, required=("date", "category", "description", "amount"))

USERS = EntitySchema(User, "users", {
    "username": as_text,
    "password": as_text,
    "role": as_role,
    "name": as_text,
    "email": as_opt_text,
    "phone": as_opt_text,
    "is_active": as_bool,
    "can_view_prices": as_bool,
    "photo": as_opt_text,
}, required=("username", "password", "name"))

SCHEMAS: Dict[str, EntitySchema] = {
    schema.table: schema
    for schema in (
        CLINICS, DOCTORS, PROSTHESIS_TYPES, TECHNICIANS,
        ORDERS, PAYMENTS, EXPENSES, USERS,
    )
}


# ================================================================
# 视图转换
# ================================================================

def _json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


SECRET_FIELDS = ("password",)


def entity_to_dict(entity: Any, camel: bool = False) -> Dict[str, Any]:
    """实体 → JSON 友好的字典（不含密码字段）。

    Args:
        entity: 任意实体实例。
        camel: 是否把键转换为驼峰命名。
    """
    data = {
        f.name: _json_value(getattr(entity, f.name))
        for f in dataclass_fields(entity)
        if f.name not in SECRET_FIELDS
    }
    return to_camel_keys(data) if camel else data
