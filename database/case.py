"""字段命名转换。

数据服务使用下划线命名（patient_name），对外的 JSON 视图使用驼峰命名
（patientName）。转换对整个对象图递归生效，包括嵌套的列表。
"""
import re
from typing import Any, Callable

_UNDERSCORE_LETTER = re.compile(r"_([a-z])")
_UPPER_LETTER = re.compile(r"[A-Z]")


def camel_key(key: str) -> str:
    """patient_name → patientName"""
    return _UNDERSCORE_LETTER.sub(lambda m: m.group(1).upper(), key)


def underscore_key(key: str) -> str:
    """patientName → patient_name"""
    return _UPPER_LETTER.sub(lambda m: "_" + m.group(0).lower(), key)


def _rename_keys(obj: Any, rename: Callable[[str], str]) -> Any:
    if isinstance(obj, dict):
        return {
            (rename(k) if isinstance(k, str) else k): _rename_keys(v, rename)
            for k, v in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return type(obj)(_rename_keys(item, rename) for item in obj)
    return obj


def to_camel_keys(obj: Any) -> Any:
    """递归地把所有字典键转换为驼峰命名。"""
    return _rename_keys(obj, camel_key)


def to_underscore_keys(obj: Any) -> Any:
    """递归地把所有字典键转换为下划线命名。"""
    return _rename_keys(obj, underscore_key)
