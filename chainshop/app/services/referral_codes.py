"""
Referral codes: derivation from wallet addresses and share links.
"""
import re
from typing import Optional
from urllib.parse import parse_qs, urlsplit

from chainshop.app.core.constants import REFERRAL_CODE_LENGTH, REFERRAL_CODE_PATTERN

_CODE_RE = re.compile(REFERRAL_CODE_PATTERN)


def derive_referral_code(wallet_address: str) -> str:
    """
    First 8 hex characters of the address after the 0x prefix, lowercased.
    32 bits of the address, so unique enough for the user base, not cryptographically.
    """
    address = wallet_address.strip()
    if address[:2].lower() == "0x":
        address = address[2:]
    return address[:REFERRAL_CODE_LENGTH].lower()


def is_valid_referral_code(code: Optional[str]) -> bool:
    return bool(code) and _CODE_RE.fullmatch(code) is not None


def build_referral_link(origin: str, code: str) -> str:
    return f"{origin.rstrip('/')}/signup?ref={code}"


def parse_referral_link(url: str) -> Optional[str]:
    """The ``ref`` query parameter of a signup link, or None."""
    values = parse_qs(urlsplit(url).query).get("ref")
    if not values or not values[0]:
        return None
    return values[0]
