import logging
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import bleach

from .config import settings

_configured = False


def get_logger(name: str) -> logging.Logger:
    global _configured
    if not _configured:
        logging.basicConfig(
            level=getattr(logging, settings.log_level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
        _configured = True
    return logging.getLogger(name)


# Business rule: money is stored rounded to 2 decimals
def round_amount(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def sanitize_input(value: Optional[str]) -> str:
    """Sanitize a user-supplied string before it is stored and displayed.

    - Strips every HTML tag using bleach.clean(..., tags=set(), strip=True)
    - Removes NULL bytes and collapses runs of whitespace
    - Trims whitespace
    """
    if value is None:
        return ""
    val = value.replace("\x00", "")
    val = bleach.clean(val, tags=set(), strip=True)
    val = re.sub(r"\s+", " ", val)
    return val.strip()
