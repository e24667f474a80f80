"""表格导出

每个 *_rows 函数生成一张工作表的数据（表头 → 值 的字典列表），
write_workbook 把若干工作表写入 xlsx 文件。

当前身份不可查看价格时，价格列统一显示为 ``***``。
"""
import io
from datetime import date, datetime
from decimal import Decimal
from typing import Any, BinaryIO, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import openpyxl
from loguru import logger
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from database.entities import Expense, Order, OrderStatus
from database.store import EntityStore
from .auth import Identity, mask_price
from .receivables import ReceivablesAggregator
from .reporting import MonthlyReport, TechnicianEarning

Row = Dict[str, Any]
Sheet = Tuple[str, List[Row]]

STATUS_LABELS = {
    OrderStatus.WAITING: "待处理",
    OrderStatus.IN_PROGRESS: "制作中",
    OrderStatus.COMPLETED: "已完成",
    OrderStatus.DELIVERED: "已交付",
}

UNKNOWN = "未知"


def _yes_no(flag: bool) -> str:
    return "是" if flag else "否"


def _fmt_date(value: Optional[Union[date, datetime]]) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def _name(entity: Any, default: str = UNKNOWN) -> str:
    return entity.name if entity is not None else default


# ================================================================
# 工作表数据
# ================================================================

def orders_rows(store: EntityStore, orders: Iterable[Order],
                identity: Optional[Identity]) -> List[Row]:
    """订单列表。"""
    rows = []
    for order in orders:
        ptype = store.get_prosthesis_type(order.prosthesis_type_id)
        technician = store.get_technician(order.technician_id)
        price = order.final_price if order.final_price is not None else order.total_price
        rows.append({
            "条码": order.barcode,
            "患者": order.patient_name,
            "医生": _name(store.get_doctor(order.doctor_id)),
            "修复体类型": _name(ptype),
            "件数": order.unit_count,
            "数字印模": _yes_no(order.is_digital_measurement),
            "传统印模": _yes_no(order.is_manual_measurement),
            "模型": _yes_no(order.has_model),
            "单价": mask_price(identity, ptype.base_price if ptype else None),
            "总价": mask_price(identity, price),
            "状态": STATUS_LABELS[order.status],
            "收件日期": _fmt_date(order.arrival_date),
            "约定交付": _fmt_date(order.delivery_date),
            "实际交付": _fmt_date(order.actual_delivery_date),
            "技师": _name(technician, "未指派"),
            "备注": order.notes or "",
        })
    return rows


def doctor_statement_rows(store: EntityStore, receivables: ReceivablesAggregator,
                          doctor_id: str, identity: Optional[Identity]) -> List[Row]:
    """医生对账单（已交付订单明细）。"""
    pricing = receivables.pricing
    rows = []
    for order in receivables.delivered_orders_for(doctor_id):
        rows.append({
            "条码": order.barcode,
            "患者": order.patient_name,
            "修复体类型": _name(store.get_prosthesis_type(order.prosthesis_type_id)),
            "件数": order.unit_count,
            "模型": _yes_no(order.has_model),
            "交付日期": _fmt_date(order.actual_delivery_date),
            "金额": mask_price(identity, pricing.billable_amount(order)),
            "折扣": mask_price(identity, order.discount_amount or Decimal("0")),
            "应收": mask_price(identity, pricing.effective_receivable(order)),
        })
    return rows


def clinic_rows(store: EntityStore, receivables: ReceivablesAggregator,
                identity: Optional[Identity]) -> List[Row]:
    rows = []
    for clinic in store.clinics:
        stats = receivables.clinic_stats(clinic.id)
        rows.append({
            "诊所": clinic.name,
            "地址": clinic.address or "",
            "电话": clinic.phone or "",
            "医生数": stats.doctor_count,
            "欠款": mask_price(identity, stats.total_debt),
            "已收": mask_price(identity, stats.total_payments),
            "余额": mask_price(identity, stats.total_balance),
        })
    return rows


def doctor_rows(store: EntityStore, receivables: ReceivablesAggregator,
                identity: Optional[Identity]) -> List[Row]:
    rows = []
    for doctor in store.doctors:
        stats = receivables.doctor_stats(doctor.id)
        rows.append({
            "医生": doctor.name,
            "诊所": _name(store.get_clinic(doctor.clinic_id)),
            "电话": doctor.phone or "",
            "订单数": stats.total_orders,
            "已交付": stats.delivered_orders,
            "欠款": mask_price(identity, stats.total_debt),
            "已收": mask_price(identity, stats.total_payments),
            "余额": mask_price(identity, stats.current_balance),
        })
    return rows


def financial_summary_rows(report: MonthlyReport,
                           identity: Optional[Identity]) -> List[Row]:
    items = [
        ("营业收入", report.total_revenue),
        ("技师工资", report.total_salaries),
        ("材料成本", report.material_costs),
        ("净利润", report.net_profit),
    ]
    rows = [{"项目": label, "金额": mask_price(identity, value)} for label, value in items]
    rows.append({"项目": "当月订单数", "金额": report.monthly_orders})
    rows.append({"项目": "已交付订单数", "金额": report.completed_orders})
    return rows


def technician_rows(earnings: Sequence[TechnicianEarning],
                    identity: Optional[Identity]) -> List[Row]:
    return [
        {
            "技师": item.name,
            "交付订单数": item.order_count,
            "月薪": mask_price(identity, item.salary),
            "提成": mask_price(identity, item.commission),
            "合计": mask_price(identity, item.total),
        }
        for item in earnings
    ]


def expense_rows(expenses: Iterable[Expense]) -> List[Row]:
    return [
        {
            "日期": _fmt_date(expense.date),
            "分类": expense.category,
            "说明": expense.description,
            "金额": float(expense.amount),
            "供应商": expense.supplier or "",
            "发票号": expense.invoice_number or "",
            "备注": expense.notes or "",
        }
        for expense in expenses
    ]


def daily_report_rows(store: EntityStore, today: date) -> List[Row]:
    """日报：当天收件与当天交付的订单。"""
    rows = []
    for order in store.orders:
        if order.arrival_date == today:
            kind, day = "收件", order.arrival_date
        elif order.actual_delivery_date == today:
            kind, day = "交付", order.actual_delivery_date
        else:
            continue
        rows.append({
            "类型": kind,
            "患者": order.patient_name,
            "医生": _name(store.get_doctor(order.doctor_id)),
            "修复体类型": _name(store.get_prosthesis_type(order.prosthesis_type_id)),
            "件数": order.unit_count,
            "状态": STATUS_LABELS[order.status],
            "日期": _fmt_date(day),
            "约定交付": _fmt_date(order.delivery_date),
        })
    return rows


# ================================================================
# xlsx 输出
# ================================================================

HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="4F46E5", end_color="4F46E5", fill_type="solid")
HEADER_ALIGNMENT = Alignment(horizontal="center", vertical="center")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
COLUMN_WIDTH = 18


def write_workbook(sheets: Sequence[Sheet],
                   target: Optional[Union[str, BinaryIO]] = None) -> Union[str, bytes]:
    """把若干工作表写入 xlsx。

    Args:
        sheets: (工作表名, 数据行) 列表；表头取第一行的键。
        target: 文件路径或可写的二进制流；为 None 时返回文件内容。

    Returns:
        target 为路径时返回路径，为 None 时返回 xlsx 字节内容。
    """
    wb = openpyxl.Workbook()
    wb.remove(wb.active)

    for title, rows in sheets:
        ws = wb.create_sheet(title=title[:31])
        headers = list(rows[0].keys()) if rows else []

        for col, header in enumerate(headers, 1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.font = HEADER_FONT
            cell.fill = HEADER_FILL
            cell.alignment = HEADER_ALIGNMENT
            cell.border = THIN_BORDER

        for row_num, row in enumerate(rows, 2):
            for col, header in enumerate(headers, 1):
                ws.cell(row=row_num, column=col, value=row.get(header)).border = THIN_BORDER

        for col in range(1, len(headers) + 1):
            ws.column_dimensions[get_column_letter(col)].width = COLUMN_WIDTH

    if not wb.sheetnames:
        wb.create_sheet(title="Sheet1")

    if target is None:
        output = io.BytesIO()
        wb.save(output)
        return output.getvalue()

    wb.save(target)
    logger.info(f"Exported {len(sheets)} sheet(s) to {target}")
    return target
