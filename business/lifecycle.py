"""订单流转

状态机：waiting → in-progress → completed → delivered（终态）

- 进入 completed 时记录完成时间（completion_date）
- delivered 只能通过交付操作进入：确定实际交付件数、是否随件交付模型，
  计算结算价，并在一次写入中落盘
- 交付后的订单只允许折扣、收款标记等财务字段变更

TransitionPolicy 控制非终态之间的流转规则：
- PERMISSIVE（默认）：任意非终态之间可以自由切换
- STRICT：只允许按顺序前进
"""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from loguru import logger

from database.entities import Order, OrderStatus, as_int
from database.errors import InvalidTransitionError, ValidationError
from database.models import utcnow
from database.store import EntityStore
from .auth import Identity, require_capability
from .pricing import PricingEngine


class TransitionPolicy(str, Enum):
    PERMISSIVE = "permissive"
    STRICT = "strict"


# 目标状态 → 允许的来源状态（严格模式）
STRICT_TRANSITIONS: Dict[OrderStatus, Tuple[OrderStatus, ...]] = {
    OrderStatus.IN_PROGRESS: (OrderStatus.WAITING,),
    OrderStatus.COMPLETED: (OrderStatus.IN_PROGRESS,),
    OrderStatus.DELIVERED: (OrderStatus.COMPLETED,),
}

# 管理员可直接编辑的订单信息字段
DETAIL_FIELDS = frozenset({
    "patient_name", "notes", "cost", "arrival_date", "delivery_date",
    "is_digital_measurement", "is_manual_measurement",
})


class OrderLifecycle:
    """订单流转服务

    Attributes:
        store: 实体仓库。
        pricing: 定价引擎。
        policy: 状态流转策略。
        clock: 当前时间函数（便于测试注入固定时间）。

    Example:
        ```python
        lifecycle = OrderLifecycle(db.store, PricingEngine(db.store))
        order = lifecycle.create_order(actor, patient_name="王芳", doctor_id=doc.id,
                                       prosthesis_type_id=crown.id,
                                       arrival_date=date.today(),
                                       delivery_date=date.today(), unit_count=3)
        lifecycle.set_status(actor, order.id, OrderStatus.COMPLETED)
        lifecycle.deliver(actor, order.id, delivered_units=2, has_model=True)
        ```
    """

    def __init__(self, store: EntityStore, pricing: PricingEngine,
                 policy: TransitionPolicy = TransitionPolicy.PERMISSIVE,
                 clock: Optional[Callable[[], datetime]] = None) -> None:
        self.store = store
        self.pricing = pricing
        self.policy = TransitionPolicy(policy)
        self.clock = clock or utcnow

    def _order(self, order_id: str) -> Order:
        order = self.store.get_order(order_id)
        if order is None:
            raise ValidationError(f"Order not found: {order_id}")
        return order

    def can_transition(self, current: OrderStatus, target: OrderStatus) -> bool:
        """判断状态流转是否被允许。"""
        current, target = OrderStatus(current), OrderStatus(target)
        if current == OrderStatus.DELIVERED or current == target:
            return False
        if self.policy == TransitionPolicy.PERMISSIVE:
            return True
        return current in STRICT_TRANSITIONS.get(target, ())

    # ================================================================
    # 创建
    # ================================================================

    def create_order(self, actor: Identity, patient_name: str, doctor_id: str,
                     prosthesis_type_id: str, arrival_date: date,
                     delivery_date: date, unit_count: int = 1,
                     **extra: Any) -> Order:
        """创建订单（报价 = 单价 × 件数，状态 waiting）。

        Args:
            actor: 当前身份。
            patient_name: 患者姓名。
            doctor_id: 医生ID。
            prosthesis_type_id: 修复体类型ID。
            arrival_date: 收件日期。
            delivery_date: 约定交付日期。
            unit_count: 件数（≥ 1）。
            **extra: 其他可选字段（technician_id、notes、cost、测量方式等）。

        Raises:
            PermissionDeniedError: 无创建权限。
            ValidationError: 医生/修复体类型不存在或件数非法。
        """
        require_capability(actor, "order.create")
        if self.store.get_doctor(doctor_id) is None:
            raise ValidationError(f"Doctor not found: {doctor_id}")
        if self.store.get_prosthesis_type(prosthesis_type_id) is None:
            raise ValidationError(f"Prosthesis type not found: {prosthesis_type_id}")

        unit_count = as_int(unit_count)
        total = self.pricing.quote(prosthesis_type_id, unit_count)
        order = self.store.add_order(
            patient_name=patient_name,
            doctor_id=doctor_id,
            prosthesis_type_id=prosthesis_type_id,
            arrival_date=arrival_date,
            delivery_date=delivery_date,
            unit_count=unit_count,
            total_price=total,
            **extra,
        )
        logger.info(f"Order {order.barcode} created for {patient_name}: {total}")
        return order

    # ================================================================
    # 状态流转
    # ================================================================

    def set_status(self, actor: Identity, order_id: str, status: OrderStatus) -> Order:
        """变更订单状态（不含交付）。

        Raises:
            PermissionDeniedError: 无状态变更权限。
            InvalidTransitionError: 目标为 delivered、订单已交付或流转不被允许。
        """
        require_capability(actor, "order.status")
        try:
            target = OrderStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown order status: {status}")
        if target == OrderStatus.DELIVERED:
            raise InvalidTransitionError("Use deliver() to mark an order delivered")

        order = self._order(order_id)
        if order.is_delivered:
            raise InvalidTransitionError(f"Order {order.barcode} is already delivered")
        if target == order.status:
            return order
        if not self.can_transition(order.status, target):
            raise InvalidTransitionError(
                f"Order {order.barcode}: {order.status.value} -> {target.value} not allowed"
            )

        changes: Dict[str, Any] = {"status": target}
        if target == OrderStatus.COMPLETED:
            changes["completion_date"] = self.clock()
        updated = self.store.update_order(order_id, **changes)
        logger.info(f"Order {order.barcode}: {order.status.value} -> {target.value}")
        return updated

    def deliver(self, actor: Identity, order_id: str, delivered_units: int,
                actual_delivery_date: Optional[date] = None,
                has_model: bool = False) -> Order:
        """交付订单并写入结算价。

        结算价 = 单价 × 实际交付件数 + 模型费（has_model 时）。
        status、unit_count、actual_delivery_date、has_model、final_price
        在同一次写入中落盘。

        Args:
            actor: 当前身份。
            order_id: 订单ID。
            delivered_units: 实际交付件数（1 ≤ 件数 ≤ 下单件数）。
            actual_delivery_date: 实际交付日期，默认取当前日期。
            has_model: 是否随件交付模型。

        Raises:
            PermissionDeniedError: 无交付权限。
            InvalidTransitionError: 订单已交付或当前状态不允许交付。
            ValidationError: 交付件数越界。
        """
        require_capability(actor, "order.deliver")
        order = self._order(order_id)
        if order.is_delivered:
            raise InvalidTransitionError(f"Order {order.barcode} is already delivered")
        if not self.can_transition(order.status, OrderStatus.DELIVERED):
            raise InvalidTransitionError(
                f"Order {order.barcode} cannot be delivered from {order.status.value}"
            )

        units = as_int(delivered_units)
        if units < 1 or units > order.unit_count:
            raise ValidationError(
                f"Delivered units must be between 1 and {order.unit_count}: {units}"
            )

        breakdown = self.pricing.finalize(order.prosthesis_type_id, units, has_model)
        updated = self.store.update_order(
            order_id,
            status=OrderStatus.DELIVERED,
            unit_count=units,
            actual_delivery_date=actual_delivery_date or self.clock().date(),
            has_model=bool(has_model),
            final_price=breakdown.final_price,
        )
        logger.info(
            f"Order {order.barcode} delivered: {units} units, "
            f"model={has_model}, final price {breakdown.final_price}"
        )
        return updated

    # ================================================================
    # 财务与信息变更
    # ================================================================

    def apply_discount(self, actor: Identity, order_id: str, amount: Decimal) -> Order:
        """为已交付订单设置折扣（不修改结算价）。

        Raises:
            PermissionDeniedError: 无折扣权限或不可查看价格。
            InvalidTransitionError: 订单尚未交付。
            ValidationError: 折扣为负或超过订单金额。
        """
        require_capability(actor, "order.discount")
        order = self._order(order_id)
        if not order.is_delivered:
            raise InvalidTransitionError(
                f"Discount applies to delivered orders only: {order.barcode}"
            )
        amount = self.pricing.validate_discount(order, amount)
        updated = self.store.update_order(order_id, discount_amount=amount)
        logger.info(f"Order {order.barcode} discount set to {amount}")
        return updated

    def mark_paid(self, actor: Identity, order_id: str, paid: bool = True) -> Order:
        require_capability(actor, "order.paid")
        self._order(order_id)
        return self.store.update_order(order_id, is_paid=bool(paid))

    def assign_technician(self, actor: Identity, order_id: str,
                          technician_id: Optional[str]) -> Order:
        """指派（或取消指派）技师，已交付订单不可变更。"""
        require_capability(actor, "order.assign")
        order = self._order(order_id)
        if order.is_delivered:
            raise InvalidTransitionError(
                f"Order {order.barcode} is delivered, technician is final"
            )
        return self.store.update_order(order_id, technician_id=technician_id)

    def update_details(self, actor: Identity, order_id: str, **changes: Any) -> Order:
        """编辑订单信息字段（患者、备注、成本、日期、测量方式）。"""
        require_capability(actor, "order.edit")
        invalid = set(changes) - DETAIL_FIELDS
        if invalid:
            raise ValidationError(f"Fields cannot be edited directly: {sorted(invalid)}")
        self._order(order_id)
        return self.store.update_order(order_id, **changes)
