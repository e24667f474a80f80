"""财务报表与运营视图

月度报表使用两套彼此独立的期间口径：
- 营业收入：已交付订单按 revenue_basis（默认收件日期 arrival_date）归入月份
- 技师提成：已交付订单按 commission_basis（默认完成时间 completion_date）归入月份

同一张订单可能在不同月份分别计入收入和提成，这是两种口径的预期结果。
收入与提成都按修复体类型的单价计算（每张订单计一次单价）。

completion_date 等时间戳以 UTC（无时区）保存，按月归集时直接取其年月，
不换算到实验室所在时区。例如 UTC 1 月 31 日 23:30 完成的订单计入 1 月，
尽管在 UTC+8 已是 2 月 1 日。

另外提供支出汇总、仪表盘统计、工作排期、技师绩效等运营视图。
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from database.entities import Order, OrderStatus, ZERO
from database.errors import ValidationError
from database.store import EntityStore
from .pricing import PricingEngine

CENT = Decimal("0.01")


class DateBasis(str, Enum):
    """订单归入期间所依据的日期字段"""
    ARRIVAL_DATE = "arrival_date"
    COMPLETION_DATE = "completion_date"
    ACTUAL_DELIVERY_DATE = "actual_delivery_date"


@dataclass(frozen=True)
class Period:
    """自然月（month 从 1 开始）"""
    year: int
    month: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValidationError(f"Month must be between 1 and 12: {self.month}")

    @classmethod
    def of(cls, day: date) -> "Period":
        return cls(day.year, day.month)

    def contains(self, value: Optional[Union[date, datetime]]) -> bool:
        if value is None:
            return False
        return value.year == self.year and value.month == self.month

    def __str__(self) -> str:
        return f"{self.year}-{self.month:02d}"


def order_date(order: Order, basis: DateBasis) -> Optional[Union[date, datetime]]:
    return getattr(order, DateBasis(basis).value)


@dataclass(frozen=True)
class MonthlyReport:
    period: Period
    total_revenue: Decimal
    total_salaries: Decimal
    material_costs: Decimal
    net_profit: Decimal
    monthly_orders: int
    completed_orders: int


@dataclass(frozen=True)
class TechnicianEarning:
    technician_id: str
    name: str
    salary: Decimal
    commission: Decimal
    total: Decimal
    order_count: int


@dataclass(frozen=True)
class CategoryTotal:
    category: str
    amount: Decimal
    count: int


@dataclass(frozen=True)
class ExpenseSummary:
    period: Period
    total: Decimal
    count: int
    average: Decimal
    top_category: Optional[str]
    by_category: List[CategoryTotal] = field(default_factory=list)


@dataclass(frozen=True)
class DashboardStats:
    total_orders: int
    waiting: int
    in_progress: int
    completed: int
    delivered: int
    completed_orders: int
    today_incoming: int
    today_delivered: int
    active_technicians: int


@dataclass(frozen=True)
class WorkSchedule:
    due_today: Tuple[Order, ...]
    overdue: Tuple[Order, ...]
    upcoming_week: Tuple[Order, ...]


@dataclass(frozen=True)
class TechnicianPerformance:
    technician_id: str
    name: str
    completed_jobs: int
    monthly_quota: int
    performance: float  # 百分比，上限 100


class FinancialReportAggregator:
    """财务报表汇总（纯计算，不缓存）

    Attributes:
        store: 实体仓库。
        pricing: 定价引擎。
        commission_rate: 提成比例。
        revenue_basis: 收入口径的日期字段。
        commission_basis: 提成口径的日期字段。
    """

    def __init__(self, store: EntityStore, pricing: PricingEngine,
                 commission_rate: Decimal = Decimal("0.10"),
                 revenue_basis: DateBasis = DateBasis.ARRIVAL_DATE,
                 commission_basis: DateBasis = DateBasis.COMPLETION_DATE) -> None:
        self.store = store
        self.pricing = pricing
        self.commission_rate = Decimal(str(commission_rate))
        self.revenue_basis = DateBasis(revenue_basis)
        self.commission_basis = DateBasis(commission_basis)

    def _delivered_in(self, period: Period, basis: DateBasis) -> List[Order]:
        return [
            o for o in self.store.orders
            if o.is_delivered and period.contains(order_date(o, basis))
        ]

    # ================================================================
    # 月度报表
    # ================================================================

    def monthly_report(self, year: int, month: int) -> MonthlyReport:
        """月度财务报表。

        - total_revenue：收入口径内已交付订单的单价之和
        - total_salaries：当前在职技师的月薪之和
        - material_costs：当月收件订单的材料成本之和
        - net_profit = total_revenue − total_salaries − material_costs

        Args:
            year: 年份。
            month: 月份（1-12）。
        """
        period = Period(year, month)
        revenue_orders = self._delivered_in(period, self.revenue_basis)
        monthly_orders = [o for o in self.store.orders if period.contains(o.arrival_date)]

        total_revenue = sum(
            (self.pricing.base_price(o.prosthesis_type_id) for o in revenue_orders), ZERO
        )
        total_salaries = sum(
            (t.salary for t in self.store.active_technicians()), ZERO
        )
        material_costs = sum((o.cost or ZERO for o in monthly_orders), ZERO)

        return MonthlyReport(
            period=period,
            total_revenue=total_revenue,
            total_salaries=total_salaries,
            material_costs=material_costs,
            net_profit=total_revenue - total_salaries - material_costs,
            monthly_orders=len(monthly_orders),
            completed_orders=len(revenue_orders),
        )

    def technician_earnings(self, year: int, month: int) -> List[TechnicianEarning]:
        """技师月度收入 = 月薪 + 提成（提成比例 × 提成口径内已交付订单的单价）。"""
        period = Period(year, month)
        delivered = self._delivered_in(period, self.commission_basis)

        earnings = []
        for tech in self.store.technicians:
            orders = [o for o in delivered if o.technician_id == tech.id]
            base_total = sum(
                (self.pricing.base_price(o.prosthesis_type_id) for o in orders), ZERO
            )
            commission = (base_total * self.commission_rate).quantize(
                CENT, rounding=ROUND_HALF_UP
            )
            earnings.append(TechnicianEarning(
                technician_id=tech.id,
                name=tech.name,
                salary=tech.salary,
                commission=commission,
                total=tech.salary + commission,
                order_count=len(orders),
            ))
        return earnings

    # ================================================================
    # 支出汇总
    # ================================================================

    def expense_summary(self, year: int, month: int) -> ExpenseSummary:
        """月度支出汇总（按分类统计，金额为 0 的分类不列出，按金额倒序）。"""
        period = Period(year, month)
        expenses = [e for e in self.store.expenses if period.contains(e.date)]
        total = sum((e.amount for e in expenses), ZERO)
        count = len(expenses)

        amounts: Dict[str, Decimal] = {}
        counts: Dict[str, int] = {}
        for expense in expenses:
            amounts[expense.category] = amounts.get(expense.category, ZERO) + expense.amount
            counts[expense.category] = counts.get(expense.category, 0) + 1

        by_category = sorted(
            (CategoryTotal(c, amounts[c], counts[c]) for c in amounts if amounts[c] > 0),
            key=lambda item: item.amount,
            reverse=True,
        )
        average = (total / count).quantize(CENT, rounding=ROUND_HALF_UP) if count else ZERO

        return ExpenseSummary(
            period=period,
            total=total,
            count=count,
            average=average,
            top_category=by_category[0].category if by_category else None,
            by_category=by_category,
        )

    # ================================================================
    # 运营视图
    # ================================================================

    def dashboard_stats(self, today: date) -> DashboardStats:
        orders = self.store.orders
        counts = {status: 0 for status in OrderStatus}
        for order in orders:
            counts[order.status] += 1

        return DashboardStats(
            total_orders=len(orders),
            waiting=counts[OrderStatus.WAITING],
            in_progress=counts[OrderStatus.IN_PROGRESS],
            completed=counts[OrderStatus.COMPLETED],
            delivered=counts[OrderStatus.DELIVERED],
            completed_orders=counts[OrderStatus.COMPLETED] + counts[OrderStatus.DELIVERED],
            today_incoming=sum(1 for o in orders if o.arrival_date == today),
            today_delivered=sum(1 for o in orders if o.actual_delivery_date == today),
            active_technicians=len(self.store.active_technicians()),
        )

    def work_schedule(self, today: date) -> WorkSchedule:
        """工作排期。

        - due_today：今天到期且未交付
        - overdue：已过约定交付日期且未交付
        - upcoming_week：约定交付日期在今天起 7 天内（含已交付）
        """
        week_end = today + timedelta(days=7)
        orders = sorted(
            (o for o in self.store.orders if o.delivery_date is not None),
            key=lambda o: o.delivery_date,
        )
        return WorkSchedule(
            due_today=tuple(o for o in orders
                            if o.delivery_date == today and not o.is_delivered),
            overdue=tuple(o for o in orders
                          if o.delivery_date < today and not o.is_delivered),
            upcoming_week=tuple(o for o in orders
                                if today <= o.delivery_date <= week_end),
        )

    def technician_performance(self) -> List[TechnicianPerformance]:
        """技师绩效 = 完成件数 / 月度指标 × 100%（上限 100%）。"""
        result = []
        for tech in self.store.technicians:
            if tech.monthly_quota > 0:
                performance = min(tech.completed_jobs / tech.monthly_quota * 100, 100.0)
            else:
                performance = 0.0
            result.append(TechnicianPerformance(
                technician_id=tech.id,
                name=tech.name,
                completed_jobs=tech.completed_jobs,
                monthly_quota=tech.monthly_quota,
                performance=round(performance, 1),
            ))
        return result
