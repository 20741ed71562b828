"""Value parsing shared by the feed normalizers."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from dateutil.parser import parse as parse_datetime  # type: ignore[import-untyped]

from salesbot.feeds.base import FeedError
from salesbot.ingest.events import EPOCH, TINYBARS_PER_HBAR

# Epoch values above this are milliseconds rather than seconds.
_MILLIS_THRESHOLD = 10**11


def _is_number(text: str) -> bool:
    head, _, tail = text.strip().partition(".")
    return head.isdigit() and (not tail or tail.isdigit())


def parse_timestamp(value: Any) -> datetime:
    """Parse ISO strings or epoch seconds/millis into a UTC datetime at ms precision."""
    if value is None or value == "":
        raise FeedError("Missing timestamp")

    if isinstance(value, (int, float)) or (isinstance(value, str) and _is_number(value)):
        try:
            number = float(value)
            millis = round(number) if number >= _MILLIS_THRESHOLD else round(number * 1000)
            return EPOCH + timedelta(milliseconds=millis)
        except (OverflowError, ValueError) as exc:
            raise FeedError(f"Timestamp out of range: {value!r}") from exc

    try:
        parsed = parse_datetime(str(value))
    except (ValueError, OverflowError) as exc:
        raise FeedError(f"Bad timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    parsed = parsed.astimezone(UTC)
    return parsed.replace(microsecond=(parsed.microsecond // 1000) * 1000)


def hbar_to_tinybars(value: Any) -> int:
    """Convert a decimal HBAR amount into tinybars."""
    if value is None or value == "":
        return 0
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return 0
    if not amount.is_finite():
        return 0
    return int(amount * TINYBARS_PER_HBAR)


def parse_price_minor(value: Any) -> int:
    """Parse a price that may already be in tinybars.

    Strings tagged ``tinybar`` and plain integers longer than 8 digits are
    tinybars; anything else is HBAR.
    """
    if value is None or value == "":
        return 0
    text = str(value).strip()
    if "tinybar" in text:
        digits = "".join(ch for ch in text if ch.isdigit())
        return int(digits) if digits else 0
    if "." not in text and text.isdigit() and len(text) > 8:
        return int(text)
    return hbar_to_tinybars(text)


def parse_serial(value: Any) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise FeedError(f"Bad serial number: {value!r}") from exc


def normalize_token_id(value: Any) -> str:
    """Hedera token ids are ``0.0.N``; some feeds send only ``N``."""
    text = str(value or "").strip()
    if not text:
        raise FeedError("Missing token id")
    if text.isdigit():
        return f"0.0.{text}"
    return text


def parse_rarity(value: Any) -> float | None:
    """Rarity as a fraction; percentages above 1 are scaled down."""
    if value is None or value == "":
        return None
    try:
        rarity = float(value)
    except (TypeError, ValueError):
        return None
    if rarity > 1:
        rarity = rarity / 100
    return rarity


def parse_rank(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None
