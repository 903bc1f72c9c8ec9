from tickerbar.config import settings

SEPARATOR = "-"


def normalize_symbol(raw: str, quote: str = None) -> str:
    """
    Canonical OKX instrument id for user input.
    "btc" -> "BTC-USDT", "eth-usd" -> "ETH-USD".
    """
    s = raw.strip().upper()
    if SEPARATOR not in s:
        return f"{s}{SEPARATOR}{(quote or settings.DEFAULT_QUOTE).upper()}"
    return s


def is_valid_symbol(symbol: str) -> bool:
    parts = symbol.split(SEPARATOR)
    if len(parts) != 2:
        return False
    base, quote = parts
    return bool(base) and bool(quote) and symbol == symbol.upper() and not any(c.isspace() for c in symbol)


def display_name(symbol: str) -> str:
    """Short label used in menus: the default quote suffix is dropped."""
    suffix = f"{SEPARATOR}{settings.DEFAULT_QUOTE.upper()}"
    if symbol.endswith(suffix):
        return symbol[: -len(suffix)]
    return symbol
