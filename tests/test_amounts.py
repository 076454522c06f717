import pytest

from amounts import format_currency, format_percentage, parse_amount


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("50", 50.0), ("12,5", 12.5), ("$ 1,234.50", 1234.5), ("€7.10", 7.1)],
)
def test_parse_amount(raw: str, expected: float) -> None:
    assert parse_amount(raw) == pytest.approx(expected)


def test_parse_amount_rejects_garbage_and_negatives() -> None:
    with pytest.raises(ValueError):
        parse_amount("abc")
    with pytest.raises(ValueError):
        parse_amount("")
    with pytest.raises(ValueError):
        parse_amount("NaN")
    with pytest.raises(ValueError, match="positive"):
        parse_amount("-3")
    assert parse_amount("-3", allow_negative=True) == -3


def test_format_currency_uses_absolute_value() -> None:
    assert format_currency(950) == "$950.00"
    assert format_currency(-12.5) == "$12.50"
    assert format_percentage(5) == "5.00%"
