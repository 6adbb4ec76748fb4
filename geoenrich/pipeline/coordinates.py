"""Parsing of ``"lat,lng"`` cell text into coordinate pairs."""

from __future__ import annotations

import re
from enum import Enum

from geoenrich.common.errors import PipelineError
from geoenrich.common.models import CoordinatePair

_DECIMAL_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class ParseFailure(str, Enum):
    EMPTY_INPUT = "empty coordinates"
    BAD_FORMAT = "invalid format, expected 'lat,lng'"
    BAD_LATITUDE = "invalid latitude"
    BAD_LONGITUDE = "invalid longitude"


class ParseError(PipelineError):
    """Raised for cell text that is not a ``lat,lng`` pair. Row-local."""

    error_code = "PARSE_ERROR"

    def __init__(self, reason: ParseFailure, text: str = "") -> None:
        detail = reason.value if not text else f"{reason.value}: {text!r}"
        super().__init__(detail)
        self.reason = reason


def parse_decimal(text: str) -> float | None:
    candidate = text.strip()
    if not _DECIMAL_RE.fullmatch(candidate):
        return None
    return float(candidate)


def parse_coordinates(text: str | None) -> CoordinatePair:
    stripped = (text or "").strip()
    if not stripped:
        raise ParseError(ParseFailure.EMPTY_INPUT)

    parts = stripped.split(",")
    if len(parts) != 2:
        raise ParseError(ParseFailure.BAD_FORMAT, stripped)

    latitude = parse_decimal(parts[0])
    if latitude is None:
        raise ParseError(ParseFailure.BAD_LATITUDE, parts[0].strip())

    longitude = parse_decimal(parts[1])
    if longitude is None:
        raise ParseError(ParseFailure.BAD_LONGITUDE, parts[1].strip())

    return CoordinatePair(latitude=latitude, longitude=longitude)


def looks_like_coordinates(text: str | None) -> bool:
    try:
        parse_coordinates(text)
    except ParseError:
        return False
    return True
