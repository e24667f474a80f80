"""定价引擎

计价规则：
- 报价：单价 × 件数（创建订单时写入 total_price）
- 结算价：单价 × 实际交付件数 + 模型费（仅在随件交付模型时收取一次）
- 应收：max(0, (结算价 或 报价) − 折扣)

修复体类型不存在时的处理由 MissingTypePolicy 决定。
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from loguru import logger

from database.entities import Order, ProsthesisType, ZERO, as_money
from database.errors import PricingError, ValidationError
from database.store import EntityStore


class MissingTypePolicy(str, Enum):
    """修复体类型缺失时的定价策略"""
    ZERO_PRICE = "zero_price"  # 按 0 计价并记录警告
    RAISE = "raise"            # 抛出 PricingError


def quote_price(base_price: Decimal, unit_count: int) -> Decimal:
    """报价 = 单价 × 件数"""
    if unit_count < 1:
        raise ValidationError(f"Unit count must be at least 1: {unit_count}")
    return base_price * unit_count


def final_price(base_price: Decimal, model_price: Optional[Decimal],
                delivered_units: int, has_model: bool) -> Decimal:
    """结算价 = 单价 × 交付件数 + 模型费（has_model 时）"""
    if delivered_units < 1:
        raise ValidationError(f"Delivered units must be at least 1: {delivered_units}")
    price = base_price * delivered_units
    if has_model:
        price += model_price or ZERO
    return price


@dataclass(frozen=True)
class PriceBreakdown:
    """交付结算明细"""
    base_price: Decimal
    delivered_units: int
    model_fee: Decimal
    final_price: Decimal


class PricingEngine:
    """定价引擎

    Attributes:
        store: 实体仓库。
        policy: 修复体类型缺失时的策略。
    """

    def __init__(self, store: EntityStore,
                 policy: MissingTypePolicy = MissingTypePolicy.ZERO_PRICE) -> None:
        self.store = store
        self.policy = MissingTypePolicy(policy)

    def resolve_type(self, type_id: str) -> Optional[ProsthesisType]:
        """查找修复体类型，按策略处理缺失。

        Raises:
            PricingError: 类型不存在且策略为 RAISE。
        """
        ptype = self.store.get_prosthesis_type(type_id)
        if ptype is None:
            if self.policy == MissingTypePolicy.RAISE:
                raise PricingError(f"Prosthesis type not found: {type_id}")
            logger.warning(f"Prosthesis type {type_id} not found, pricing as 0")
        return ptype

    def base_price(self, type_id: str) -> Decimal:
        ptype = self.resolve_type(type_id)
        return ptype.base_price if ptype is not None else ZERO

    def quote(self, type_id: str, unit_count: int) -> Decimal:
        """计算订单报价。"""
        return quote_price(self.base_price(type_id), unit_count)

    def finalize(self, type_id: str, delivered_units: int,
                 has_model: bool) -> PriceBreakdown:
        """计算交付结算价。

        Args:
            type_id: 修复体类型ID。
            delivered_units: 实际交付件数。
            has_model: 是否随件交付模型。

        Returns:
            结算明细。
        """
        ptype = self.resolve_type(type_id)
        base = ptype.base_price if ptype is not None else ZERO
        model = ptype.model_price if ptype is not None else None
        price = final_price(base, model, delivered_units, has_model)
        return PriceBreakdown(
            base_price=base,
            delivered_units=delivered_units,
            model_fee=(model or ZERO) if has_model else ZERO,
            final_price=price,
        )

    @staticmethod
    def billable_amount(order: Order) -> Decimal:
        """订单计费金额：已结算取结算价，否则取报价。"""
        return order.final_price if order.final_price is not None else order.total_price

    def effective_receivable(self, order: Order) -> Decimal:
        """订单实际应收 = max(0, 计费金额 − 折扣)"""
        receivable = self.billable_amount(order) - (order.discount_amount or ZERO)
        return max(ZERO, receivable)

    def validate_discount(self, order: Order, amount: Decimal) -> Decimal:
        """校验折扣金额。

        Raises:
            ValidationError: 折扣为负或超过订单计费金额。
        """
        amount = as_money(amount)
        if amount < 0:
            raise ValidationError(f"Discount cannot be negative: {amount}")
        billable = self.billable_amount(order)
        if amount > billable:
            raise ValidationError(
                f"Discount {amount} exceeds order amount {billable}"
            )
        return amount
