"""订单条码生成。

格式：前缀 + 毫秒级时间戳 + 三位随机数，例如 ``BL1706428800123042``。
唯一性由 orders.barcode 唯一约束兜底，冲突时由调用方重新生成。
"""
import random
import time
from typing import Callable, Optional

BarcodeFactory = Callable[[], str]


def generate_barcode(prefix: str = "BL", now_ms: Optional[int] = None) -> str:
    """生成订单条码。

    Args:
        prefix: 条码前缀。
        now_ms: 毫秒时间戳（可选，默认取当前时间）。

    Returns:
        条码字符串。
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{prefix}{now_ms}{random.randint(0, 999):03d}"
