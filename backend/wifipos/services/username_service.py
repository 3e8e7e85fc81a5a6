# Overview: Generates guest-pass usernames for tokens sold outside pre-minted stock.

from __future__ import annotations

import secrets
import string
from datetime import datetime

from wifipos.time_utils import utcnow

DIRECT_SALE_PREFIX = "DS"
_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def generate_direct_sale_username(now: datetime | None = None, suffix_length: int = 3) -> str:
    """
    Direct-sale username: DS-YYMMDD-HHMMSS-XXX.

    The timestamp part sorts sales chronologically on the device's guest
    list; the random suffix separates sales within the same second. The
    wifi_tokens unique constraint catches the rare collision.
    """
    now = now or utcnow()
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(suffix_length))
    return f"{DIRECT_SALE_PREFIX}-{now:%y%m%d}-{now:%H%M%S}-{suffix}"
