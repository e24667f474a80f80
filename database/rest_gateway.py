"""基于 HTTP 的托管数据服务网关（PostgREST 风格接口）。

约定：
- 表地址为 ``{base_url}/rest/v1/{table}``
- 认证头：``apikey`` 与 ``Authorization: Bearer``
- 排序参数 ``order=col.asc|desc``，等值过滤 ``col=eq.value``
- 写操作携带 ``Prefer: return=representation``，由服务端返回确认后的记录

所有网络故障与服务端错误都会转换为 ConnectivityError / GatewayError。
"""
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx
from loguru import logger

from .errors import ConfigurationError, ConnectivityError, GatewayError
from .gateway import Row, TableGateway

URL_PLACEHOLDERS = ("your-project-id", "localhost")
KEY_PLACEHOLDER = "your-anon-key"
MIN_API_KEY_LENGTH = 100


def validate_backend_config(url: str, api_key: str) -> str:
    """校验远程数据服务的连接参数。

    Args:
        url: 数据服务地址。
        api_key: 访问密钥。

    Returns:
        去掉末尾斜杠的数据服务地址。

    Raises:
        ConfigurationError: 参数缺失、为占位符或地址格式非法。
    """
    url = (url or "").strip()
    api_key = (api_key or "").strip()

    if not url or not api_key:
        raise ConfigurationError("Backend URL and API key are both required")

    if any(placeholder in url for placeholder in URL_PLACEHOLDERS):
        raise ConfigurationError(f"Backend URL looks like a placeholder: {url}")

    if KEY_PLACEHOLDER in api_key or len(api_key) < MIN_API_KEY_LENGTH:
        raise ConfigurationError("Backend API key looks like a placeholder")

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(f"Backend URL is not a valid URL: {url}")

    return url.rstrip("/")


def classify_error(status_code: Optional[int], message: str) -> Optional[str]:
    """把服务端错误归类为连接错误类别。

    Returns:
        ConnectivityError 的类别，无法归类时返回 None。
    """
    text = (message or "").lower()

    if status_code == 401 or "invalid api key" in text or "jwt" in text:
        return ConnectivityError.INVALID_CREDENTIALS
    if ("relation" in text and "does not exist" in text) \
            or "could not find the table" in text:
        return ConnectivityError.MISSING_SCHEMA
    if status_code == 403 or "permission denied" in text \
            or "row-level security" in text:
        return ConnectivityError.PERMISSION_DENIED
    if "failed to fetch" in text or "network" in text or "cors" in text:
        return ConnectivityError.UNREACHABLE
    return None


def _json_serial(obj):
    """JSON 序列化辅助函数，处理特殊类型"""
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    raise TypeError(f"Type {type(obj)} not serializable")


def _filter_value(value: Any) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return "eq.true" if value else "eq.false"
    if isinstance(value, (datetime, date)):
        return f"eq.{value.isoformat()}"
    return f"eq.{value}"


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict):
        return str(payload.get("message") or payload.get("error") or payload)
    return str(payload)


class RestTableGateway(TableGateway):
    """托管数据服务网关。

    Attributes:
        base_url: 数据服务地址。
        probe_timeout: 连通性检测超时（秒）。
        client: httpx 同步客户端。

    Example:
        ```python
        url = validate_backend_config(settings.backend_url, settings.backend_api_key)
        gateway = RestTableGateway(url, settings.backend_api_key)
        gateway.probe()
        orders = gateway.select("orders", order_by="created_at", descending=True)
        ```
    """

    def __init__(self, base_url: str, api_key: str,
                 probe_timeout: float = 15.0,
                 timeout: float = 30.0,
                 transport: Optional[httpx.BaseTransport] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.probe_timeout = probe_timeout
        self.client = httpx.Client(
            base_url=f"{self.base_url}/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "Prefer": "return=representation",
            },
            timeout=timeout,
            transport=transport,
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {path} timed out")
            raise ConnectivityError(ConnectivityError.TIMEOUT, str(e)) from e
        except httpx.TransportError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise ConnectivityError(ConnectivityError.UNREACHABLE, str(e)) from e

        if response.is_error:
            message = _error_message(response)
            category = classify_error(response.status_code, message)
            logger.error(f"{method} {path} -> HTTP {response.status_code}: {message}")
            if category:
                raise ConnectivityError(category, message)
            raise GatewayError(f"HTTP {response.status_code}: {message}")
        return response

    @staticmethod
    def _rows(response: httpx.Response) -> List[Row]:
        try:
            payload = response.json()
        except ValueError as e:
            raise GatewayError(f"Malformed response: {response.text[:200]}") from e
        if isinstance(payload, dict):
            return [payload]
        if not isinstance(payload, list):
            raise GatewayError(f"Unexpected response payload: {payload!r}")
        return payload

    @staticmethod
    def _encode(row: Row) -> str:
        return json.dumps(row, default=_json_serial, ensure_ascii=False)

    def select(self, table: str, order_by: Optional[str] = None,
               descending: bool = False) -> List[Row]:
        params = {"select": "*"}
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        return self._rows(self._request("GET", table, params=params))

    def find(self, table: str, filters: Dict[str, Any]) -> List[Row]:
        params = {"select": "*"}
        params.update({key: _filter_value(value) for key, value in filters.items()})
        return self._rows(self._request("GET", table, params=params))

    def insert(self, table: str, row: Row) -> Row:
        rows = self._rows(self._request("POST", table, content=self._encode(row)))
        if not rows:
            raise GatewayError(f"Insert into {table} returned no record")
        return rows[0]

    def update(self, table: str, record_id: str, changes: Row) -> Optional[Row]:
        rows = self._rows(self._request(
            "PATCH", table,
            params={"id": f"eq.{record_id}"},
            content=self._encode(changes),
        ))
        return rows[0] if rows else None

    def delete(self, table: str, record_id: str) -> bool:
        rows = self._rows(self._request(
            "DELETE", table, params={"id": f"eq.{record_id}"}
        ))
        return len(rows) > 0

    def probe(self) -> None:
        """两阶段连通性检测。

        1. 请求服务根地址（超时 probe_timeout 秒）：401 视为密钥无效，404 可接受
        2. 对 users 表做一次最小查询，确认表结构与访问策略就绪

        Raises:
            ConnectivityError: 检测失败，category 标明原因。
        """
        try:
            response = self.client.get("", timeout=self.probe_timeout)
        except httpx.TimeoutException as e:
            raise ConnectivityError(ConnectivityError.TIMEOUT, str(e)) from e
        except httpx.TransportError as e:
            raise ConnectivityError(ConnectivityError.UNREACHABLE, str(e)) from e

        if response.status_code == 401:
            raise ConnectivityError(ConnectivityError.INVALID_CREDENTIALS)
        if response.is_error and response.status_code != 404:
            message = _error_message(response)
            raise ConnectivityError(
                classify_error(response.status_code, message)
                or ConnectivityError.UNKNOWN,
                f"HTTP {response.status_code}: {message}",
            )

        try:
            self._request(
                "GET", "users",
                params={"select": "id", "limit": "1"},
                timeout=self.probe_timeout,
            )
        except ConnectivityError:
            raise
        except GatewayError as e:
            raise ConnectivityError(ConnectivityError.UNKNOWN, str(e)) from e

        logger.info(f"Backend {self.base_url} is reachable")

    def close(self) -> None:
        self.client.close()
