"""Financial report and operational view tests."""
from datetime import date, datetime
from decimal import Decimal

import pytest

from business.lifecycle import OrderLifecycle
from business.reporting import DateBasis, FinancialReportAggregator, Period
from database.entities import OrderStatus
from database.errors import ValidationError
from tests.fakes import place_order


def complete_and_deliver(lifecycle, admin, order, **kwargs):
    lifecycle.set_status(admin, order.id, OrderStatus.COMPLETED)
    return lifecycle.deliver(admin, order.id, 1, **kwargs)


class TestPeriod:
    """Test the month period value."""

    def test_contains_and_str(self):
        period = Period(2024, 1)
        assert period.contains(date(2024, 1, 31))
        assert not period.contains(date(2024, 2, 1))
        assert not period.contains(None)
        assert str(period) == "2024-01"
        assert Period.of(date(2024, 3, 9)) == Period(2024, 3)

    @pytest.mark.parametrize("month", [0, 13])
    def test_month_is_one_based(self, month):
        with pytest.raises(ValidationError):
            Period(2024, month)


class TestMonthlyReport:
    """Test the monthly financial report."""

    def test_revenue_salaries_costs(self, lifecycle, admin, lab, reports):
        denture = place_order(lifecycle, admin, lab, ptype=lab.denture,
                              cost=Decimal("300"), technician_id=lab.tech.id)
        complete_and_deliver(lifecycle, admin, denture, has_model=True)
        place_order(lifecycle, admin, lab, cost=Decimal("50"))

        report = reports.monthly_report(2024, 1)
        assert report.total_revenue == Decimal("2000")
        assert report.total_salaries == Decimal("10000")
        assert report.material_costs == Decimal("350")
        assert report.net_profit == Decimal("-8350")
        assert report.monthly_orders == 2
        assert report.completed_orders == 1

    def test_inactive_technicians_excluded_from_salaries(self, lab, reports):
        lab.store.update_technician(lab.tech.id, is_active=False)
        assert reports.monthly_report(2024, 1).total_salaries == Decimal("0")

    def test_empty_month(self, reports):
        report = reports.monthly_report(2023, 6)
        assert report.total_revenue == Decimal("0")
        assert report.completed_orders == 0


class TestTechnicianEarnings:
    """Test salary plus commission."""

    def test_commission_on_completion_month(self, lifecycle, admin, lab, reports):
        order = place_order(lifecycle, admin, lab, ptype=lab.denture,
                            technician_id=lab.tech.id)
        complete_and_deliver(lifecycle, admin, order)

        earning = reports.technician_earnings(2024, 1)[0]
        assert earning.name == "李师傅"
        assert earning.commission == Decimal("200.00")
        assert earning.total == Decimal("10200.00")
        assert earning.order_count == 1

    def test_bases_are_independent(self, lifecycle, admin, lab, reports):
        order = place_order(lifecycle, admin, lab, ptype=lab.denture,
                            technician_id=lab.tech.id,
                            arrival=date(2023, 12, 20), due=date(2024, 1, 5))
        complete_and_deliver(lifecycle, admin, order)

        assert reports.monthly_report(2023, 12).total_revenue == Decimal("2000")
        assert reports.monthly_report(2024, 1).total_revenue == Decimal("0")
        assert reports.technician_earnings(2023, 12)[0].commission == Decimal("0.00")
        assert reports.technician_earnings(2024, 1)[0].commission == Decimal("200.00")

    def test_completion_month_follows_stored_utc_timestamp(self, lab, pricing, admin):
        # 23:30 UTC on Jan 31 is already Feb 1 in UTC+8
        lifecycle = OrderLifecycle(lab.store, pricing,
                                   clock=lambda: datetime(2024, 1, 31, 23, 30))
        order = place_order(lifecycle, admin, lab, ptype=lab.denture,
                            technician_id=lab.tech.id)
        complete_and_deliver(lifecycle, admin, order)

        reports = FinancialReportAggregator(lab.store, pricing)
        assert reports.technician_earnings(2024, 1)[0].commission == Decimal("200.00")
        assert reports.technician_earnings(2024, 2)[0].commission == Decimal("0.00")

    def test_configurable_basis_and_rate(self, lab, pricing, admin, clock):
        lifecycle = OrderLifecycle(lab.store, pricing, clock=clock)
        order = place_order(lifecycle, admin, lab, ptype=lab.bridge,
                            technician_id=lab.tech.id)
        lifecycle.deliver(admin, order.id, 1)
        reports = FinancialReportAggregator(
            lab.store, pricing, commission_rate=Decimal("0.05"),
            commission_basis=DateBasis.ACTUAL_DELIVERY_DATE,
        )
        assert reports.technician_earnings(2024, 1)[0].commission == Decimal("40.00")


class TestExpenseSummary:
    """Test monthly expense summary."""

    def test_grouped_by_category(self, lab, reports):
        lab.store.add_expense(date=date(2024, 1, 3), category="材料",
                              description="树脂", amount=Decimal("120"))
        lab.store.add_expense(date=date(2024, 1, 9), category="材料",
                              description="瓷粉", amount=Decimal("80"))
        lab.store.add_expense(date=date(2024, 1, 15), category="房租",
                              description="一月房租", amount=Decimal("3000"))
        lab.store.add_expense(date=date(2024, 2, 1), category="电费",
                              description="二月电费", amount=Decimal("90"))

        summary = reports.expense_summary(2024, 1)
        assert summary.total == Decimal("3200")
        assert summary.count == 3
        assert summary.average == Decimal("1066.67")
        assert summary.top_category == "房租"
        assert [c.category for c in summary.by_category] == ["房租", "材料"]
        assert summary.by_category[1].count == 2

    def test_empty(self, reports):
        summary = reports.expense_summary(2024, 1)
        assert summary.total == Decimal("0")
        assert summary.average == Decimal("0")
        assert summary.top_category is None


class TestOperationalViews:
    """Test dashboard, schedule and performance views."""

    def test_dashboard(self, lifecycle, admin, lab, reports):
        first = place_order(lifecycle, admin, lab, arrival=date(2024, 1, 28))
        second = place_order(lifecycle, admin, lab)
        place_order(lifecycle, admin, lab)
        lifecycle.set_status(admin, first.id, OrderStatus.IN_PROGRESS)
        lifecycle.deliver(admin, second.id, 1)

        stats = reports.dashboard_stats(date(2024, 1, 28))
        assert stats.total_orders == 3
        assert stats.waiting == 1
        assert stats.in_progress == 1
        assert stats.delivered == 1
        assert stats.completed_orders == 1
        assert stats.today_incoming == 1
        assert stats.today_delivered == 1
        assert stats.active_technicians == 1

    def test_work_schedule(self, lifecycle, admin, lab, reports):
        today = date(2024, 1, 20)
        due_today = place_order(lifecycle, admin, lab, due=today)
        overdue = place_order(lifecycle, admin, lab, due=date(2024, 1, 18))
        delivered_soon = place_order(lifecycle, admin, lab, due=date(2024, 1, 24))
        place_order(lifecycle, admin, lab, due=date(2024, 2, 10))
        lifecycle.deliver(admin, delivered_soon.id, 1)

        schedule = reports.work_schedule(today)
        assert [o.id for o in schedule.due_today] == [due_today.id]
        assert [o.id for o in schedule.overdue] == [overdue.id]
        assert [o.id for o in schedule.upcoming_week] == [due_today.id, delivered_soon.id]

    def test_technician_performance(self, lab, reports):
        lab.store.add_technician(name="周师傅", username="zhou", password="pw",
                                 monthly_quota=10, completed_jobs=15)
        lab.store.add_technician(name="吴师傅", username="wu", password="pw",
                                 monthly_quota=0, completed_jobs=3)
        by_name = {p.name: p.performance for p in reports.technician_performance()}
        assert by_name == {"李师傅": 75.0, "周师傅": 100.0, "吴师傅": 0.0}
