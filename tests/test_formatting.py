"""
Currency formatting and rounding tests.

Each dashboard screen keeps its own rupee rendering; these pin all three
so a "cleanup" that merges them shows up as a failure:
  - compact (cockpit / insights): Cr 2dp, L 1dp, K 0dp
  - short   (planner):            Cr 1dp, L 1dp, K 0dp, plain rupees below 1,000
  - kilo    (operations board):   K 1dp, plain rupees below 1,000

Rounding is half-up on the exact binary value (4.5 -> 5, never banker's 4).
"""
from bizpulse.utils.formatting import (
    format_inr_compact,
    format_inr_kilo,
    format_inr_lakhs,
    format_inr_short,
    plain_number,
)
from bizpulse.utils.helpers import round_half_up, safe_divide, to_fixed


# ---------------------------------------------------------------------------
# Rounding helpers
# ---------------------------------------------------------------------------

def test_to_fixed_rounds_half_up():
    assert to_fixed(4.5) == "5"
    assert to_fixed(2.5) == "3"
    assert to_fixed(2.25, 1) == "2.3"


def test_to_fixed_uses_binary_value():
    # 1.005 is stored as 1.00499999...
    assert to_fixed(1.005, 2) == "1.00"


def test_to_fixed_pads_decimals():
    assert to_fixed(2, 1) == "2.0"
    assert to_fixed(0.0, 2) == "0.00"


def test_round_half_up_matches_math_round():
    assert round_half_up(84.5) == 85
    assert round_half_up(84.49) == 84
    assert round_half_up(-2.5) == -2


def test_safe_divide_zero_denominator():
    assert safe_divide(10, 0) == 0.0
    assert safe_divide(10, 0, default=1.0) == 1.0
    assert safe_divide(10, 4) == 2.5


# ---------------------------------------------------------------------------
# Compact (cockpit / insights)
# ---------------------------------------------------------------------------

def test_compact_crores():
    assert format_inr_compact(12_345_678) == "₹1.23Cr"


def test_compact_lakhs():
    assert format_inr_compact(250_000) == "₹2.5L"


def test_compact_thousands():
    assert format_inr_compact(4_500) == "₹5K"
    assert format_inr_compact(50_000) == "₹50K"


def test_compact_small_values_still_in_thousands():
    assert format_inr_compact(0) == "₹0K"
    assert format_inr_compact(400) == "₹0K"


def test_compact_boundaries():
    assert format_inr_compact(10_000_000) == "₹1.00Cr"
    assert format_inr_compact(100_000) == "₹1.0L"
    assert format_inr_compact(99_999) == "₹100K"


# ---------------------------------------------------------------------------
# Short (planner)
# ---------------------------------------------------------------------------

def test_short_crores_one_decimal():
    assert format_inr_short(12_345_678) == "₹1.2Cr"


def test_short_lakhs_and_thousands():
    assert format_inr_short(250_000) == "₹2.5L"
    assert format_inr_short(4_500) == "₹5K"


def test_short_plain_rupees_below_thousand():
    assert format_inr_short(640) == "₹640"


# ---------------------------------------------------------------------------
# Kilo (operations board)
# ---------------------------------------------------------------------------

def test_kilo_one_decimal():
    assert format_inr_kilo(4_500) == "₹4.5K"
    assert format_inr_kilo(250_000) == "₹250.0K"


def test_kilo_plain_rupees_below_thousand():
    assert format_inr_kilo(640) == "₹640"
    assert format_inr_kilo(99.5) == "₹99.5"


def test_plain_number_keeps_every_digit():
    assert plain_number(5.0) == "5"
    assert plain_number(3.1234567) == "3.1234567"
    assert plain_number(1_234_567.5) == "1234567.5"


def test_screens_disagree_on_same_value():
    """The same 4,500 renders differently on the insights and operations screens"""
    assert format_inr_compact(4_500) != format_inr_kilo(4_500)


def test_lakhs_digits_argument():
    assert format_inr_lakhs(703_346, 0) == "₹7L"
    assert format_inr_lakhs(703_346) == "₹7.0L"
