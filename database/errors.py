"""错误分类。

按照失败发生的位置划分：
- 配置错误：启动时即终止
- 连接错误：归类为少量可读类别，由上层展示并允许手动重试
- 加载错误：整轮刷新作废，保留上一份快照
- 写入错误：原样抛给调用方，快照不变
- 领域错误：输入校验、状态流转、权限、定价
"""
from typing import Optional


class ConfigurationError(ValueError):
    """连接参数缺失、为占位符或格式非法。"""


class GatewayError(RuntimeError):
    """数据服务调用失败（所有网关异常的基类）。"""


class ConnectivityError(GatewayError):
    """数据服务不可达。

    Attributes:
        category: 错误类别，取值见 CATEGORIES。
    """

    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    INVALID_CREDENTIALS = "invalid_credentials"
    MISSING_SCHEMA = "missing_schema"
    PERMISSION_DENIED = "permission_denied"
    UNKNOWN = "unknown"

    CATEGORIES = (
        TIMEOUT, UNREACHABLE, INVALID_CREDENTIALS,
        MISSING_SCHEMA, PERMISSION_DENIED, UNKNOWN,
    )

    MESSAGES = {
        TIMEOUT: "Connection timed out. Check the backend URL and your network.",
        UNREACHABLE: "Backend server is unreachable. Check the URL and your network.",
        INVALID_CREDENTIALS: "API key is invalid. Copy the correct key from the backend console.",
        MISSING_SCHEMA: "Database tables do not exist yet. Run the schema migrations.",
        PERMISSION_DENIED: "Permission denied by the backend. Check the access policies.",
        UNKNOWN: "Unknown connection error.",
    }

    def __init__(self, category: str, detail: Optional[str] = None) -> None:
        if category not in self.CATEGORIES:
            category = self.UNKNOWN
        self.category = category
        self.detail = detail
        message = self.MESSAGES[category]
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class LoadError(RuntimeError):
    """批量加载中某个集合失败。"""

    def __init__(self, collection: str, detail: str) -> None:
        self.collection = collection
        super().__init__(f"Failed to load {collection}: {detail}")


class MutationError(RuntimeError):
    """数据服务拒绝了写入。"""

    def __init__(self, table: str, action: str, detail: str) -> None:
        self.table = table
        self.action = action
        super().__init__(f"{action} on {table} rejected: {detail}")


class ValidationError(ValueError):
    """输入不满足业务约束。"""


class InvalidTransitionError(ValueError):
    """订单状态流转不被允许。"""


class PermissionDeniedError(PermissionError):
    """当前身份无权执行该操作。"""


class PricingError(LookupError):
    """定价所需的修复体类型无法解析（仅在严格策略下抛出）。"""
