"""
Compact Indian currency formatting (thousands / lakhs / crores).

Three renderings exist on the dashboard and each is kept as-is:

- ``format_inr_compact``  goal cockpit and pulse insights
  (Cr with 2 decimals, L with 1, K with none; nothing below K)
- ``format_inr_short``    planner cards and the daily action panel
  (Cr with 1 decimal, L with 1, K with none at >= 1,000, plain rupees below)
- ``format_inr_kilo``     operations board
  (K with 1 decimal at >= 1,000, plain rupees below)
"""
from decimal import Decimal

from bizpulse.utils.helpers import to_fixed

RUPEE = "₹"
CRORE = 10_000_000
LAKH = 100_000
THOUSAND = 1_000


def format_inr_crores(value: float, digits: int = 2) -> str:
    return f"{RUPEE}{to_fixed(value / CRORE, digits)}Cr"


def format_inr_lakhs(value: float, digits: int = 1) -> str:
    return f"{RUPEE}{to_fixed(value / LAKH, digits)}L"


def format_inr_thousands(value: float, digits: int = 0) -> str:
    return f"{RUPEE}{to_fixed(value / THOUSAND, digits)}K"


def format_inr_compact(value: float) -> str:
    """12,345,678 -> ₹1.23Cr, 250,000 -> ₹2.5L, 4,500 -> ₹5K"""
    if value >= CRORE:
        return format_inr_crores(value, 2)
    if value >= LAKH:
        return format_inr_lakhs(value, 1)
    return format_inr_thousands(value, 0)


def format_inr_short(value: float) -> str:
    """12,345,678 -> ₹1.2Cr, 250,000 -> ₹2.5L, 4,500 -> ₹5K, 640 -> ₹640"""
    if value >= CRORE:
        return format_inr_crores(value, 1)
    if value >= LAKH:
        return format_inr_lakhs(value, 1)
    if value >= THOUSAND:
        return format_inr_thousands(value, 0)
    return f"{RUPEE}{to_fixed(value, 0)}"


def format_inr_kilo(value: float) -> str:
    """4,500 -> ₹4.5K, 250,000 -> ₹250.0K, 640 -> ₹640"""
    if value >= THOUSAND:
        return format_inr_thousands(value, 1)
    return f"{RUPEE}{plain_number(value)}"


def plain_number(value: float) -> str:
    """Shortest plain rendering of a number: 640.0 -> "640", 99.5 -> "99.5"."""
    if float(value).is_integer():
        return str(int(value))
    return format(Decimal(repr(float(value))).normalize(), "f")
