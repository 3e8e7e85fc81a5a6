from __future__ import annotations

import re

_HEX_ONLY = re.compile(r"^[0-9a-f]{12}$")


def normalize_mac(value: str) -> str:
    """
    Canonical hardware address: lower-case, colon-delimited.

    Accepts colon, dash, dot (Cisco style) or no separators.
    "AA-BB-CC-DD-EE-FF" -> "aa:bb:cc:dd:ee:ff"
    """
    if not value:
        raise ValueError("MAC address is required")

    digits = re.sub(r"[\s:\-.]", "", str(value)).lower()
    if not _HEX_ONLY.match(digits):
        raise ValueError(f"Invalid MAC address: {value!r}")
    return ":".join(digits[i:i + 2] for i in range(0, 12, 2))
