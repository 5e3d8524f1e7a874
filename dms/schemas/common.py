"""
Field types shared by the request schemas.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from dateutil import parser as date_parser
from pydantic import BeforeValidator
from typing_extensions import Annotated

from dms.services.financials import parse_money_or_none


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _money(value: Any) -> Optional[Decimal]:
    if _blank(value):
        return None
    amount = parse_money_or_none(value)
    if amount is None:
        raise ValueError("must be a monetary amount")
    return amount


def _timestamp(value: Any) -> Optional[datetime]:
    if _blank(value):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = date_parser.isoparse(value.strip())
        except ValueError:
            raise ValueError("must be an ISO-8601 date or datetime")
    else:
        raise ValueError("must be an ISO-8601 date or datetime")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _text(value: Any) -> Optional[str]:
    if _blank(value):
        return None
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return str(value)
    return value


def _str_list(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


Money = Annotated[Optional[Decimal], BeforeValidator(_money)]
Timestamp = Annotated[Optional[datetime], BeforeValidator(_timestamp)]
OptionalText = Annotated[Optional[str], BeforeValidator(_text)]
StrList = Annotated[Optional[List[str]], BeforeValidator(_str_list)]


def check_option(value: Optional[str], options: Iterable[str], field_name: str) -> Optional[str]:
    """Validate ``value`` against allowed options; None passes through."""
    if value is None:
        return value
    options = list(options)
    if value not in options:
        raise ValueError(f"{field_name} must be one of: {', '.join(options)}")
    return value
