from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union


def money(value: Optional[Union[Decimal, float, int]]) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def iso(value: Optional[Union[date, datetime]]) -> Optional[str]:
    return value.isoformat() if value else None


def uid(value) -> Optional[str]:
    return str(value) if value else None
