"""登录认证与权限控制

- authenticate：按用户名 + 密码在启用的账号中查找，返回当前身份
- 页面权限：由 lab_config.get_role_pages() 配置
- 操作权限：按角色授予的能力（capability），部分能力还要求可查看价格
"""
import secrets
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from loguru import logger

from config.lab_config import lab_config
from database.entities import USERS, User, UserRole
from database.errors import PermissionDeniedError
from database.gateway import TableGateway

PRICE_MASK = "***"


@dataclass(frozen=True)
class Identity:
    """当前登录身份"""
    user_id: str
    username: str
    name: str
    role: UserRole
    can_view_prices: bool = False

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(
            user_id=user.id,
            username=user.username,
            name=user.name,
            role=user.role,
            can_view_prices=user.can_view_prices,
        )


# 能力 → 允许的角色
ROLE_CAPABILITIES: Dict[str, Tuple[UserRole, ...]] = {
    "order.create": (UserRole.ADMIN, UserRole.TECHNICIAN),
    "order.status": (UserRole.ADMIN, UserRole.TECHNICIAN),
    "order.deliver": (UserRole.ADMIN, UserRole.TECHNICIAN),
    "order.assign": (UserRole.ADMIN, UserRole.TECHNICIAN),
    "order.edit": (UserRole.ADMIN,),
    "order.discount": (UserRole.ADMIN, UserRole.ACCOUNTANT),
    "order.paid": (UserRole.ADMIN, UserRole.ACCOUNTANT),
}

# 需要同时具备价格查看权限的能力
PRICE_CAPABILITIES = frozenset({"order.discount", "order.paid"})


def authenticate(gateway: TableGateway, username: str,
                 password: str) -> Optional[Identity]:
    """用户登录。

    Args:
        gateway: 数据服务网关。
        username: 用户名。
        password: 密码。

    Returns:
        登录成功返回 Identity，否则返回 None。

    Raises:
        GatewayError: 数据服务调用失败。
    """
    if not username or not password:
        return None

    rows = gateway.find("users", {"username": username, "is_active": True})
    for row in rows:
        user = USERS.from_row(row)
        if secrets.compare_digest(user.password.encode(), password.encode()):
            logger.info(f"User {username} logged in as {user.role.value}")
            return Identity.from_user(user)

    logger.warning(f"Login failed for user {username}")
    return None


def has_capability(identity: Identity, capability: str) -> bool:
    roles = ROLE_CAPABILITIES.get(capability, ())
    if identity.role not in roles:
        return False
    if capability in PRICE_CAPABILITIES and not identity.can_view_prices:
        return False
    return True


def require_capability(identity: Identity, capability: str) -> None:
    """校验操作权限。

    Raises:
        PermissionDeniedError: 当前身份不具备该能力。
    """
    if not has_capability(identity, capability):
        raise PermissionDeniedError(
            f"{identity.username} ({identity.role.value}) cannot perform {capability}"
        )


def accessible_pages(identity: Identity) -> List[str]:
    return list(lab_config.get_role_pages().get(identity.role.value, []))


def can_access_page(identity: Identity, page: str) -> bool:
    return page in accessible_pages(identity)


def mask_price(identity: Optional[Identity],
               value: Any) -> Union[Any, str]:
    """无价格查看权限时用 *** 遮蔽金额。"""
    if identity is not None and identity.can_view_prices:
        if isinstance(value, Decimal):
            return float(value)
        return value
    return PRICE_MASK
