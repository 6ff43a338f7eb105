from datetime import date, datetime
from decimal import Decimal

from shopbill.utils.dates import month_bounds, parse_date, shift_month
from shopbill.utils.money import as_float, round2, sum2, to_decimal
from shopbill.utils.paging import clamp_limit, clamp_offset, page
from shopbill.utils.text import clean_str, slugify, unique_slug


def test_round2_half_up():
    assert round2("0.005") == Decimal("0.01")
    assert round2(Decimal("2.345")) == Decimal("2.35")
    assert round2(None) == Decimal("0.00")
    assert round2("abc") == Decimal("0.00")


def test_to_decimal_accepts_comma_and_float():
    assert to_decimal("12,50") == Decimal("12.50")
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_decimal("", Decimal("1")) == Decimal("1")


def test_sum2_and_as_float():
    assert sum2(["1.10", Decimal("2.205"), None]) == Decimal("3.31")
    assert as_float(None) == 0.0
    assert as_float(Decimal("9.999")) == 10.0


def test_parse_date_variants():
    assert parse_date("2024-03-05") == date(2024, 3, 5)
    assert parse_date("2024-03-05T10:00:00Z") == date(2024, 3, 5)
    assert parse_date("05.03.2024") == date(2024, 3, 5)
    assert parse_date(datetime(2024, 3, 5, 12)) == date(2024, 3, 5)
    assert parse_date("not a date") is None
    assert parse_date("  ") is None


def test_month_helpers():
    assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    assert shift_month(date(2024, 1, 15), 1) == (2023, 12)
    assert shift_month(date(2024, 1, 15), 13) == (2022, 12)


def test_clean_str():
    assert clean_str("  hello ", 3) == "hel"
    assert clean_str("   ", 10) is None
    assert clean_str(None, 10) is None


def test_slugify():
    assert slugify("  Ravi's Mobile Store!! ") == "ravi-s-mobile-store"
    assert slugify("***") == "shop"
    assert len(slugify("x" * 200)) == 80


def test_unique_slug_suffix():
    slug = unique_slug("demo-shop")
    assert slug.startswith("demo-shop-")
    suffix = slug[len("demo-shop-"):]
    assert len(suffix) == 6
    assert suffix.isalnum() and suffix == suffix.lower()


def test_paging_clamps():
    assert clamp_limit(None, 50, 100) == 50
    assert clamp_limit("0", 50, 100) == 50
    assert clamp_limit("500", 50, 100) == 100
    assert clamp_limit("junk", 50, 100) == 50
    assert clamp_offset("-3") == 0
    assert clamp_offset("7") == 7
    assert page([1, 2], 10, lambda x: x * 2) == {"data": [2, 4], "total": 10}
