"""应收汇总

医生余额始终由快照实时推导，不读取诊所/医生表上的冗余余额字段：
- 欠款 = 已交付订单的计费金额之和（结算价，未结算时取报价）
- 已收 = 该医生全部收付记录金额之和（debt 类型与 payment 同样累加）
- 余额 = 欠款 − 已收

诊所余额为其下属医生余额之和。
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Tuple

from database.entities import Order, ZERO
from database.store import EntityStore
from .pricing import PricingEngine


@dataclass(frozen=True)
class DoctorStats:
    doctor_id: str
    total_orders: int
    delivered_orders: int
    total_debt: Decimal
    total_payments: Decimal
    current_balance: Decimal
    total_discounts: Decimal
    net_balance: Decimal


@dataclass(frozen=True)
class ClinicStats:
    clinic_id: str
    doctor_count: int
    total_debt: Decimal
    total_payments: Decimal
    total_balance: Decimal


@dataclass(frozen=True)
class ReceivablesOverview:
    clinic_count: int
    doctor_count: int
    total_balance: Decimal
    delivered_orders: int


class ReceivablesAggregator:
    """应收汇总（纯计算，不缓存）

    Attributes:
        store: 实体仓库。
        pricing: 定价引擎。
    """

    def __init__(self, store: EntityStore, pricing: PricingEngine) -> None:
        self.store = store
        self.pricing = pricing

    def delivered_orders_for(self, doctor_id: str) -> Tuple[Order, ...]:
        """医生的已交付订单（对账单明细）。"""
        return tuple(o for o in self.store.orders_by_doctor(doctor_id) if o.is_delivered)

    def doctor_stats(self, doctor_id: str) -> DoctorStats:
        """计算单个医生的应收统计。

        Args:
            doctor_id: 医生ID（不存在时返回全零统计）。

        Returns:
            DoctorStats，其中 net_balance = current_balance − total_discounts。
        """
        orders = self.store.orders_by_doctor(doctor_id)
        delivered = [o for o in orders if o.is_delivered]

        total_debt = sum((self.pricing.billable_amount(o) for o in delivered), ZERO)
        total_payments = sum(
            (p.amount for p in self.store.payments_by_doctor(doctor_id)), ZERO
        )
        total_discounts = sum((o.discount_amount or ZERO for o in delivered), ZERO)
        balance = total_debt - total_payments

        return DoctorStats(
            doctor_id=doctor_id,
            total_orders=len(orders),
            delivered_orders=len(delivered),
            total_debt=total_debt,
            total_payments=total_payments,
            current_balance=balance,
            total_discounts=total_discounts,
            net_balance=balance - total_discounts,
        )

    def all_doctor_stats(self) -> List[DoctorStats]:
        return [self.doctor_stats(d.id) for d in self.store.doctors]

    def clinic_stats(self, clinic_id: str) -> ClinicStats:
        doctors = self.store.doctors_by_clinic(clinic_id)
        stats = [self.doctor_stats(d.id) for d in doctors]
        return ClinicStats(
            clinic_id=clinic_id,
            doctor_count=len(doctors),
            total_debt=sum((s.total_debt for s in stats), ZERO),
            total_payments=sum((s.total_payments for s in stats), ZERO),
            total_balance=sum((s.current_balance for s in stats), ZERO),
        )

    def overview(self) -> ReceivablesOverview:
        stats = self.all_doctor_stats()
        return ReceivablesOverview(
            clinic_count=len(self.store.clinics),
            doctor_count=len(self.store.doctors),
            total_balance=sum((s.current_balance for s in stats), ZERO),
            delivered_orders=sum(1 for o in self.store.orders if o.is_delivered),
        )
