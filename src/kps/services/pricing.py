from __future__ import annotations

import math
import re

DEFAULT_MARKUP = 1000

# Leading numeral, the way a lenient float parser reads "1999.50 rub"
_NUMERAL = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def final_price(wholesale_price: str | None, markup: int = DEFAULT_MARKUP) -> int:
    """Sale price = wholesale price + flat markup, rounded half up.

    Anything that does not start with a numeral prices at 0.
    """
    if not wholesale_price:
        return 0
    clean = re.sub(r"\s", "", str(wholesale_price).replace(",", ".", 1))
    m = _NUMERAL.match(clean)
    if not m:
        return 0
    value = float(m.group(0))
    if not math.isfinite(value):
        return 0
    return int(math.floor(value + markup + 0.5))


def format_price(price: int | None) -> str:
    if not price:
        return "0"
    return f"{int(price):,}".replace(",", " ")
