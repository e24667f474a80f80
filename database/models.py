"""SQLAlchemy ORM 模型定义。

本模块定义了关系型数据后端的全部表结构，字段名与远程数据服务保持一致
（下划线命名），包括：
- 诊所、医生、修复体类型、技师等基础实体
- 订单、收款/欠款记录等业务记录
- 支出、系统账号等辅助数据

主键统一使用不透明的字符串标识，由本层在插入时生成。
"""
import uuid
from datetime import datetime, date, timezone
from typing import List, Optional

from sqlalchemy import (
    Column, String, Text, Boolean, Date, DateTime, Integer,
    DECIMAL, ForeignKey,
)
from sqlalchemy.orm import declarative_base, relationship

# SQLAlchemy declarative base，所有模型都继承自此类
# 设置 __allow_unmapped__ = True 以兼容 SQLAlchemy 2.0 的类型注解要求
Base = declarative_base()
Base.__allow_unmapped__ = True


def new_id() -> str:
    """生成不透明的记录标识。"""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    """当前 UTC 时间（不带时区信息，与 SQLite 存储保持一致）。"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimestampMixin:
    """创建/更新时间戳，由持久层负责赋值。"""

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Clinic(TimestampMixin, Base):
    """诊所表模型。

    current_balance / total_debt 为冗余字段，仅作展示，
    权威余额由应收汇总实时计算。

    Relationships:
        doctors: 该诊所下的医生列表。
    """
    __tablename__ = "clinics"

    id: str = Column(String(32), primary_key=True, default=new_id)
    name: str = Column(String(100), nullable=False)
    address: Optional[str] = Column(Text)
    phone: Optional[str] = Column(String(30))
    email: Optional[str] = Column(String(100))
    logo: Optional[str] = Column(Text)
    current_balance: float = Column(DECIMAL(12, 2), default=0, nullable=False)
    total_debt: float = Column(DECIMAL(12, 2), default=0, nullable=False)

    doctors: List["Doctor"] = relationship("Doctor", back_populates="clinic")


class Doctor(TimestampMixin, Base):
    """医生表模型，每位医生隶属于唯一一家诊所。"""
    __tablename__ = "doctors"

    id: str = Column(String(32), primary_key=True, default=new_id)
    name: str = Column(String(100), nullable=False)
    clinic_id: str = Column(String(32), ForeignKey("clinics.id"), nullable=False)
    phone: Optional[str] = Column(String(30))
    email: Optional[str] = Column(String(100))
    photo: Optional[str] = Column(Text)
    current_balance: float = Column(DECIMAL(12, 2), default=0, nullable=False)
    total_debt: float = Column(DECIMAL(12, 2), default=0, nullable=False)

    clinic: "Clinic" = relationship("Clinic", back_populates="doctors")


class ProsthesisType(TimestampMixin, Base):
    """修复体类型表模型。

    Attributes:
        base_price: 单价（按件计）。
        model_price: 模型费，仅在随件交付实体模型时一次性收取。
    """
    __tablename__ = "prosthesis_types"

    id: str = Column(String(32), primary_key=True, default=new_id)
    name: str = Column(String(100), nullable=False)
    base_price: float = Column(DECIMAL(12, 2), nullable=False)
    model_price: Optional[float] = Column(DECIMAL(12, 2))
    category: Optional[str] = Column(String(50))


class Technician(TimestampMixin, Base):
    """技师表模型。"""
    __tablename__ = "technicians"

    id: str = Column(String(32), primary_key=True, default=new_id)
    name: str = Column(String(100), nullable=False)
    username: str = Column(String(50), nullable=False)
    password: str = Column(String(255), nullable=False)
    monthly_quota: int = Column(Integer, default=0, nullable=False)
    completed_jobs: int = Column(Integer, default=0, nullable=False)
    salary: float = Column(DECIMAL(12, 2), default=0, nullable=False)
    is_active: bool = Column(Boolean, default=True, nullable=False)
    photo: Optional[str] = Column(Text)
    phone: Optional[str] = Column(String(30))
    email: Optional[str] = Column(String(100))


class Order(TimestampMixin, Base):
    """订单表模型（核心业务记录）。

    状态：waiting / in-progress / completed / delivered。
    final_price、actual_delivery_date 以及最终 has_model 只在交付时写入一次。
    """
    __tablename__ = "orders"

    id: str = Column(String(32), primary_key=True, default=new_id)
    barcode: str = Column(String(40), unique=True, nullable=False)
    patient_name: str = Column(String(100), nullable=False)
    doctor_id: str = Column(String(32), ForeignKey("doctors.id"), nullable=False)
    prosthesis_type_id: str = Column(
        String(32), ForeignKey("prosthesis_types.id"), nullable=False
    )
    status: str = Column(String(20), default="waiting", nullable=False)
    technician_id: Optional[str] = Column(String(32), ForeignKey("technicians.id"))
    arrival_date: date = Column(Date, nullable=False)
    delivery_date: date = Column(Date, nullable=False)
    completion_date: Optional[datetime] = Column(DateTime)
    actual_delivery_date: Optional[date] = Column(Date)
    notes: Optional[str] = Column(Text)
    cost: Optional[float] = Column(DECIMAL(12, 2))
    unit_count: int = Column(Integer, default=1, nullable=False)
    total_price: float = Column(DECIMAL(12, 2), default=0, nullable=False)
    final_price: Optional[float] = Column(DECIMAL(12, 2))
    discount_amount: Optional[float] = Column(DECIMAL(12, 2))
    is_paid: bool = Column(Boolean, default=False, nullable=False)
    is_digital_measurement: bool = Column(Boolean, default=False, nullable=False)
    is_manual_measurement: bool = Column(Boolean, default=False, nullable=False)
    has_model: bool = Column(Boolean, default=False, nullable=False)


class Payment(TimestampMixin, Base):
    """收款/欠款记录表模型。

    type 取值 payment（收款）或 debt（手工登记的欠款调整）。
    """
    __tablename__ = "payments"

    id: str = Column(String(32), primary_key=True, default=new_id)
    doctor_id: str = Column(String(32), ForeignKey("doctors.id"), nullable=False)
    order_id: Optional[str] = Column(String(32), ForeignKey("orders.id"))
    amount: float = Column(DECIMAL(12, 2), nullable=False)
    date: date = Column(Date, nullable=False)
    type: str = Column(String(10), default="payment", nullable=False)
    description: str = Column(Text, default="", nullable=False)
    invoice_number: Optional[str] = Column(String(50))


class Expense(TimestampMixin, Base):
    """支出表模型，category 取自固定分类列表。"""
    __tablename__ = "expenses"

    id: str = Column(String(32), primary_key=True, default=new_id)
    date: date = Column(Date, nullable=False)
    category: str = Column(String(50), nullable=False)
    description: str = Column(Text, nullable=False)
    amount: float = Column(DECIMAL(12, 2), nullable=False)
    supplier: Optional[str] = Column(String(100))
    invoice_number: Optional[str] = Column(String(50))
    notes: Optional[str] = Column(Text)


class User(TimestampMixin, Base):
    """系统账号表模型。

    role 取值 admin / technician / accountant；
    can_view_prices 控制价格相关字段是否可见。
    """
    __tablename__ = "users"

    id: str = Column(String(32), primary_key=True, default=new_id)
    username: str = Column(String(50), unique=True, nullable=False)
    password: str = Column(String(255), nullable=False)
    role: str = Column(String(20), default="technician", nullable=False)
    name: str = Column(String(100), nullable=False)
    email: Optional[str] = Column(String(100))
    phone: Optional[str] = Column(String(30))
    is_active: bool = Column(Boolean, default=True, nullable=False)
    can_view_prices: bool = Column(Boolean, default=False, nullable=False)
    photo: Optional[str] = Column(Text)


# 表名 → 模型，供通用网关按表名访问
TABLES = {
    model.__tablename__: model
    for model in (
        Clinic, Doctor, ProsthesisType, Technician,
        Order, Payment, Expense, User,
    )
}
