from datetime import date, datetime
from typing import Annotated, Any

from pydantic import BeforeValidator

# Year first, or year last with the month first, separated by "-", "/" or "."
_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%Y.%m.%d",
    "%m-%d-%Y",
    "%m/%d/%Y",
    "%m.%d.%Y",
)


def parse_query_date(value: Any) -> Any:
    """
    Parse a calendar day written in one of the common formats.

    Values which are not strings are left to Pydantic, as are unknown formats, which then fail its own validation.
    """
    if not isinstance(value, str):
        return value
    value = value.strip()
    for fmt in _FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return value


QueryDate = Annotated[date, BeforeValidator(parse_query_date)]
