"""EAN-13 barcodes."""
from __future__ import annotations

import random
import re
from typing import Optional

# GS1 prefix for India; the remaining nine body digits are random.
GS1_PREFIX = "890"

DIGITS_RE = re.compile(r"[0-9]+")


def check_digit(body: str) -> int:
    """Check digit for a 12 digit EAN-13 body (weights 1,3,1,3,... from the left)."""
    if len(body) != 12 or not DIGITS_RE.fullmatch(body):
        raise ValueError("EAN-13 body must be 12 digits")
    total = sum(int(d) * (1 if i % 2 == 0 else 3) for i, d in enumerate(body))
    return (10 - total % 10) % 10


def generate_ean13(body: Optional[str] = None, rng: Optional[random.Random] = None) -> str:
    if body is None:
        rng = rng or random.SystemRandom()
        body = GS1_PREFIX + "".join(str(rng.randrange(10)) for _ in range(12 - len(GS1_PREFIX)))
    return body + str(check_digit(body))


def validate_ean13(code: str) -> tuple[bool, str]:
    if not code or not DIGITS_RE.fullmatch(code):
        return False, "Barcode must contain only digits"
    if len(code) != 13:
        return False, "Barcode must be exactly 13 digits"
    if int(code[-1]) != check_digit(code[:12]):
        return False, "Invalid check digit"
    return True, "Valid EAN-13 barcode"
