"""Display strings for rendered invoices: rupee amounts, dates, amount in words."""

from datetime import date
from decimal import Decimal

from num2words import num2words

from core.money import ZERO, round_money, to_decimal

CURRENCY_SYMBOLS = {"INR": "₹"}


def group_indian(integer_digits: str) -> str:
    """Indian digit grouping: last three digits, then pairs (12,34,567)."""
    if len(integer_digits) <= 3:
        return integer_digits
    head, tail = integer_digits[:-3], integer_digits[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs) + "," + tail


def format_currency(amount: Decimal, currency: str = "INR") -> str:
    """₹1,23,456.78 style amount; negatives as -₹..."""
    value = round_money(to_decimal(amount))
    sign = "-" if value < 0 else ""
    integer_part, _, fraction = f"{abs(value):.2f}".partition(".")
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    return f"{sign}{symbol}{group_indian(integer_part)}.{fraction}"


def format_invoice_date(value: date) -> str:
    """DD/MM/YYYY, as printed on Indian tax invoices."""
    return value.strftime("%d/%m/%Y")


def _words(number: int) -> str:
    return num2words(number, lang="en_IN").replace(",", "").upper()


def amount_in_words(amount: Decimal) -> str:
    """
    Rupee amount in words for the invoice footer.

    Examples:
        1200    -> "ONE THOUSAND TWO HUNDRED RUPEES ONLY"
        1200.50 -> "ONE THOUSAND TWO HUNDRED RUPEES AND FIFTY PAISE ONLY"
    """
    value = round_money(abs(to_decimal(amount)))
    rupees = int(value)
    paise = int((value - rupees) * 100)

    result = f"{_words(rupees)} RUPEES"
    if paise > ZERO:
        result += f" AND {_words(paise)} PAISE"
    return f"{result} ONLY"
