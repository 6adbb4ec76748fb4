"""Data models shared by the enrichment stages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Union


@dataclass(frozen=True)
class CoordinatePair:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class ResolvedLocation:
    full_address: str
    district: str
    province: str


@dataclass(frozen=True)
class RowJob:
    row_index: int
    raw_text: str


@dataclass(frozen=True)
class Skipped:
    row_index: int
    reason: str
    error_code: str = "SKIPPED"


@dataclass(frozen=True)
class Resolved:
    row_index: int
    location: ResolvedLocation
    coordinates: CoordinatePair


RowResult = Union[Skipped, Resolved]


@dataclass(frozen=True)
class Batch:
    """Half-open range ``[start, end)`` of absolute row indices."""

    start: int
    end: int

    def __len__(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class ColumnLayout:
    coordinate: int
    address: int
    district: int
    province: int


class Table(Protocol):
    def rows(self) -> list[list[str]]: ...

    def set_cell(self, row_index: int, column_index: int, value: str) -> None: ...

    def save(self, path) -> None: ...


class Geocoder(Protocol):
    def resolve(self, pair: CoordinatePair) -> ResolvedLocation: ...
