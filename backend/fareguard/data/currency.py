"""Currency display helpers. Amounts are never converted between currencies."""

CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$", "CAD": "CA$", "GBP": "£", "EUR": "€",
    "JPY": "¥", "AUD": "A$", "SGD": "S$", "HKD": "HK$",
    "INR": "₹", "AED": "AED ", "QAR": "QAR ", "TRY": "TRY ",
    "KRW": "₩", "TWD": "NT$", "NGN": "₦",
}


def format_price(amount, currency: str = "USD") -> str:
    """Format a price with currency symbol for display (cents only when present)."""
    symbol = CURRENCY_SYMBOLS.get(currency, currency + " ")
    value = float(amount)
    if value == int(value):
        return f"{symbol}{int(value):,}"
    return f"{symbol}{value:,.2f}"
