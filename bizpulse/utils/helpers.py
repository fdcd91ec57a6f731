"""
Helper utilities
"""
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from zoneinfo import ZoneInfo
import math


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safely divide two numbers"""
    try:
        return numerator / denominator if denominator != 0 else default
    except (TypeError, ZeroDivisionError):
        return default


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from negative infinity (Math.round)"""
    return int(math.floor(value + 0.5))


def to_fixed(value: float, digits: int = 0) -> str:
    """
    Render a number with a fixed count of decimals.

    Rounds half-up on the exact binary value, so 4.5 -> "5" and
    2.25 -> "2.3", while 1.005 stays "1.00" because its binary
    representation sits just below the half.
    """
    quantum = Decimal(1).scaleb(-digits)
    return str(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


def business_today(tz_name: str = "Asia/Kolkata") -> date:
    """Current date in the business timezone"""
    return datetime.now(ZoneInfo(tz_name)).date()


def business_now(tz_name: str = "Asia/Kolkata") -> datetime:
    """Current timezone-aware datetime in the business timezone"""
    return datetime.now(ZoneInfo(tz_name))
