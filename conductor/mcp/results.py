"""Tool result envelopes and argument coercion shared by the tool handlers."""

import uuid
from typing import Any, Optional

from conductor.core.operation_log import OperationReceipt

MAX_ITEMS_PER_CALL = 50
MAX_DATE_RANGE_DAYS = 30


def mcp_success(text: str, data: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": text}], "isError": False, **(data or {})}


def mcp_error(text: str, data: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": text}], "isError": True, **(data or {})}


def with_receipt(receipt: OperationReceipt, extra: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    return {**receipt.as_dict(), **(extra or {})}


def arg_str(args: dict[str, Any], key: str) -> Optional[str]:
    value = args.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def arg_int(args: dict[str, Any], key: str, default: Optional[int] = None) -> Optional[int]:
    value = args.get(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def arg_bool(args: dict[str, Any], key: str, default: bool = False) -> bool:
    value = args.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def arg_list(args: dict[str, Any], key: str) -> list[str]:
    value = args.get(key)
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v) for v in value]


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def correlation_id_from(args: dict[str, Any]) -> str:
    return arg_str(args, "correlation_id") or str(uuid.uuid4())
