import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import inspect


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Enum):
        return value.value
    return str(value)


def to_json_safe(value: Any) -> Any:
    """Deep copy through JSON so the result can be stored in a JSON column."""
    return json.loads(json.dumps(value, default=_json_default))


def snapshot_record(record: Any) -> dict[str, Any] | None:
    if record is None:
        return None
    mapper = inspect(record).mapper
    raw = {column.key: getattr(record, column.key) for column in mapper.column_attrs}
    return to_json_safe(raw)
