#!/usr/bin/env python3
"""义齿加工所管理后台 - 命令行入口

使用方式：
    python app.py status
    python app.py --username admin --password admin123 balances
    python app.py --username admin --password admin123 report --year 2024 --month 1
    python app.py --username admin --password admin123 report --year 2024 --month 1 --export report.xlsx
    python app.py --username admin --password admin123 schedule
    python app.py --username admin --password admin123 export orders --output orders.xlsx
    python app.py watch

环境变量（在 .env 文件中配置，运行 python scripts/setup_env.py 生成）：
    BACKEND                   数据后端 sql / rest（默认 sql）
    DATABASE_URL              SQL 后端连接地址
    BACKEND_URL               REST 数据服务地址
    BACKEND_API_KEY           REST 数据服务访问密钥
    REFRESH_INTERVAL_SECONDS  后台刷新间隔（默认 30）
"""
import argparse
import asyncio
import signal
import sys
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from loguru import logger

from business.auth import Identity, authenticate, can_access_page, mask_price
from business.export import (
    clinic_rows, daily_report_rows, doctor_rows, doctor_statement_rows,
    expense_rows, financial_summary_rows, orders_rows, technician_rows,
    write_workbook,
)
from business.lifecycle import OrderLifecycle, TransitionPolicy
from business.pricing import MissingTypePolicy, PricingEngine
from business.receivables import ReceivablesAggregator
from business.reporting import DateBasis, FinancialReportAggregator
from business.scheduler import Scheduler, schedule_refresh
from config.settings import settings
from database import DatabaseManager
from database.errors import (
    ConfigurationError, ConnectivityError, InvalidTransitionError, LoadError,
    MutationError, PermissionDeniedError, ValidationError,
)


@dataclass
class Services:
    """业务服务集合（均基于同一个实体仓库）"""
    pricing: PricingEngine
    lifecycle: OrderLifecycle
    receivables: ReceivablesAggregator
    reports: FinancialReportAggregator


def build_services(db: DatabaseManager) -> Services:
    """按 settings 中的策略组装业务服务。"""
    pricing = PricingEngine(db.store, MissingTypePolicy(settings.missing_type_policy))
    return Services(
        pricing=pricing,
        lifecycle=OrderLifecycle(
            db.store, pricing, TransitionPolicy(settings.transition_policy)
        ),
        receivables=ReceivablesAggregator(db.store, pricing),
        reports=FinancialReportAggregator(
            db.store, pricing,
            commission_rate=Decimal(str(settings.commission_rate)),
            revenue_basis=DateBasis(settings.revenue_date_basis),
            commission_basis=DateBasis(settings.commission_date_basis),
        ),
    )


def _money(identity: Optional[Identity], value: Decimal) -> str:
    shown = mask_price(identity, value)
    return shown if isinstance(shown, str) else f"{shown:,.2f}"


def _parse_date(text: Optional[str]) -> Optional[date]:
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"Invalid date: {text}")


def _login(db: DatabaseManager, args, page: str) -> Identity:
    identity = authenticate(db.gateway, args.username, args.password)
    if identity is None:
        raise SystemExit("登录失败：用户名或密码错误")
    if not can_access_page(identity, page):
        raise SystemExit(f"{identity.name} ({identity.role.value}) 无权访问 {page}")
    return identity


# ================================================================
# 子命令
# ================================================================

def cmd_status(db: DatabaseManager, services: Services, args) -> None:
    counts = {name: len(getattr(db.store, name)) for name in (
        "clinics", "doctors", "prosthesis_types", "technicians",
        "orders", "payments", "expenses", "users",
    )}
    print(f"状态: {db.store.status.value}")
    print(f"加载时间: {db.store.loaded_at}")
    for name, count in counts.items():
        print(f"  {name:<18}{count:>6}")


def cmd_balances(db: DatabaseManager, services: Services, args) -> None:
    identity = _login(db, args, "clients")
    store = db.store
    for clinic in store.clinics:
        stats = services.receivables.clinic_stats(clinic.id)
        print(f"{clinic.name}  医生 {stats.doctor_count} 位  余额 "
              f"{_money(identity, stats.total_balance)}")
        for doctor in store.doctors_by_clinic(clinic.id):
            d = services.receivables.doctor_stats(doctor.id)
            print(f"    {doctor.name:<12} 欠款 {_money(identity, d.total_debt):>12}"
                  f"  已收 {_money(identity, d.total_payments):>12}"
                  f"  余额 {_money(identity, d.current_balance):>12}")

    overview = services.receivables.overview()
    print(f"合计：诊所 {overview.clinic_count} 家，医生 {overview.doctor_count} 位，"
          f"应收余额 {_money(identity, overview.total_balance)}")


def cmd_report(db: DatabaseManager, services: Services, args) -> None:
    identity = _login(db, args, "accounting")
    today = date.today()
    year, month = args.year or today.year, args.month or today.month

    report = services.reports.monthly_report(year, month)
    earnings = services.reports.technician_earnings(year, month)
    expenses = services.reports.expense_summary(year, month)

    print(f"===== {report.period} 月度报表 =====")
    print(f"营业收入: {_money(identity, report.total_revenue)}")
    print(f"技师工资: {_money(identity, report.total_salaries)}")
    print(f"材料成本: {_money(identity, report.material_costs)}")
    print(f"净利润:   {_money(identity, report.net_profit)}")
    print(f"当月订单 {report.monthly_orders} 张，已交付 {report.completed_orders} 张")
    print("----- 技师收入 -----")
    for item in earnings:
        print(f"  {item.name:<10} 订单 {item.order_count:>3}  提成 "
              f"{_money(identity, item.commission):>10}  合计 {_money(identity, item.total):>10}")
    print("----- 支出 -----")
    print(f"  共 {expenses.count} 笔，合计 {expenses.total:,.2f}，"
          f"最多分类 {expenses.top_category or '-'}")
    for item in expenses.by_category:
        print(f"  {item.category:<8}{item.amount:>12,.2f}  ({item.count} 笔)")

    if args.export:
        month_expenses = [e for e in db.store.expenses if report.period.contains(e.date)]
        write_workbook([
            ("财务汇总", financial_summary_rows(report, identity)),
            ("技师收入", technician_rows(earnings, identity)),
            ("支出明细", expense_rows(month_expenses)),
        ], args.export)
        print(f"已导出: {args.export}")


def cmd_schedule(db: DatabaseManager, services: Services, args) -> None:
    _login(db, args, "dashboard")
    today = _parse_date(args.date) or date.today()
    stats = services.reports.dashboard_stats(today)
    schedule = services.reports.work_schedule(today)

    print(f"===== {today.isoformat()} =====")
    print(f"订单 {stats.total_orders}：待处理 {stats.waiting} / 制作中 {stats.in_progress}"
          f" / 已完成 {stats.completed} / 已交付 {stats.delivered}")
    print(f"今日收件 {stats.today_incoming}，今日交付 {stats.today_delivered}，"
          f"在职技师 {stats.active_technicians}")
    for title, orders in (("今日到期", schedule.due_today),
                          ("已逾期", schedule.overdue),
                          ("七日内到期", schedule.upcoming_week)):
        print(f"----- {title} ({len(orders)}) -----")
        for order in orders:
            print(f"  {order.barcode}  {order.patient_name:<10} "
                  f"{order.delivery_date.isoformat()}  {order.status.value}")


def cmd_export(db: DatabaseManager, services: Services, args) -> None:
    page = {"orders": "orders", "clients": "clients",
            "expenses": "expenses", "daily": "dashboard",
            "statement": "clients"}[args.view]
    identity = _login(db, args, page)
    store = db.store

    if args.view == "orders":
        sheets = [("订单", orders_rows(store, store.orders, identity))]
    elif args.view == "clients":
        sheets = [
            ("诊所", clinic_rows(store, services.receivables, identity)),
            ("医生", doctor_rows(store, services.receivables, identity)),
        ]
    elif args.view == "expenses":
        sheets = [("支出", expense_rows(store.expenses))]
    elif args.view == "statement":
        if not args.doctor:
            raise SystemExit("导出对账单需要 --doctor")
        sheets = [("对账单", doctor_statement_rows(
            store, services.receivables, args.doctor, identity))]
    else:
        sheets = [("日报", daily_report_rows(store, date.today()))]

    write_workbook(sheets, args.output)
    print(f"已导出: {args.output}")


async def cmd_watch(db: DatabaseManager, services: Services, args) -> None:
    """后台定时刷新快照，直到收到退出信号。"""
    loop = asyncio.get_running_loop()
    scheduler = Scheduler(loop=loop)
    schedule_refresh(scheduler, db.store, seconds=args.interval)
    scheduler.start()

    shutdown_event = asyncio.Event()

    def signal_handler(signum):
        """处理退出信号"""
        logger.info(f"收到信号 {signum}，正在关闭服务...")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler, sig)

    print("  快照后台刷新已启动，按 Ctrl+C 停止")
    try:
        await shutdown_event.wait()
    finally:
        scheduler.stop()


def cmd_deliver(db: DatabaseManager, services: Services, args) -> None:
    identity = _login(db, args, "orders")
    order = db.store.get_order_by_barcode(args.barcode)
    if order is None:
        raise SystemExit(f"订单不存在: {args.barcode}")
    units = order.unit_count if args.units is None else args.units
    delivered = services.lifecycle.deliver(
        identity, order.id, units,
        actual_delivery_date=_parse_date(args.date), has_model=args.model,
    )
    print(f"{delivered.barcode} 已交付 {delivered.unit_count} 件，"
          f"结算价 {_money(identity, delivered.final_price)}")


COMMANDS = {
    "deliver": cmd_deliver,
    "status": cmd_status,
    "balances": cmd_balances,
    "report": cmd_report,
    "schedule": cmd_schedule,
    "export": cmd_export,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="义齿加工所管理后台")
    parser.add_argument("--db", default=None, help="数据库连接 URL（SQL 后端）")
    parser.add_argument("--username", default=None, help="登录用户名")
    parser.add_argument("--password", default=None, help="登录密码")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="检测连接并显示数据概况")
    sub.add_parser("balances", help="诊所/医生应收余额")

    report = sub.add_parser("report", help="月度财务报表")
    report.add_argument("--year", type=int, default=None)
    report.add_argument("--month", type=int, default=None, help="月份 1-12")
    report.add_argument("--export", default=None, help="导出 xlsx 文件路径")

    schedule = sub.add_parser("schedule", help="仪表盘与工作排期")
    schedule.add_argument("--date", default=None, help="日期 YYYY-MM-DD（默认今天）")

    export = sub.add_parser("export", help="导出表格")
    export.add_argument("view", choices=["orders", "clients", "expenses", "daily", "statement"])
    export.add_argument("--doctor", default=None, help="医生ID（对账单）")
    export.add_argument("--output", required=True, help="xlsx 文件路径")

    deliver = sub.add_parser("deliver", help="按条码交付订单")
    deliver.add_argument("barcode")
    deliver.add_argument("--units", type=int, default=None, help="实际交付件数（默认全部）")
    deliver.add_argument("--model", action="store_true", help="随件交付模型")
    deliver.add_argument("--date", default=None, help="实际交付日期 YYYY-MM-DD（默认今天）")

    watch = sub.add_parser("watch", help="后台定时刷新快照")
    watch.add_argument("--interval", type=int, default=None, help="刷新间隔（秒）")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    db = None
    try:
        db = DatabaseManager(args.db)
        db.check_connection()
        services = build_services(db)

        if args.command == "watch":
            asyncio.run(cmd_watch(db, services, args))
        else:
            COMMANDS[args.command](db, services, args)
        return 0
    except ConfigurationError as e:
        logger.error(f"配置错误: {e}")
        return 2
    except (ConnectivityError, LoadError) as e:
        logger.error(f"无法连接数据服务: {e}")
        return 1
    except (ValidationError, InvalidTransitionError,
            PermissionDeniedError, MutationError) as e:
        logger.error(f"操作失败: {e}")
        return 1
    finally:
        if db is not None:
            db.close()


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        pass
