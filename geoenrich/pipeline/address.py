"""Mapping of a reverse-geocode address breakdown to display fields."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any

from geoenrich.common.models import ResolvedLocation


@dataclass(frozen=True)
class AddressBreakdown:
    house_number: str = ""
    road: str = ""
    suburb: str = ""
    city: str = ""
    county: str = ""
    state: str = ""
    state_district: str = ""
    postcode: str = ""
    country: str = ""
    # Populated for some locales only (e.g. Thailand, Cambodia).
    subdistrict: str = ""
    district: str = ""
    province: str = ""

    @classmethod
    def from_payload(cls, address: dict[str, Any]) -> "AddressBreakdown":
        values = {}
        for item in fields(cls):
            value = address.get(item.name)
            if value is None:
                continue
            if not isinstance(value, str):
                raise TypeError(f"address.{item.name} must be a string, got {type(value).__name__}")
            values[item.name] = value
        return cls(**values)


def _first(*candidates: str) -> str:
    for candidate in candidates:
        if candidate:
            return candidate
    return ""


def format_full_address(display_name: str, addr: AddressBreakdown) -> str:
    parts = [
        " ".join(part for part in (addr.house_number, addr.road) if part),
        _first(addr.subdistrict, addr.suburb),
        _first(addr.district, addr.county, addr.state_district),
        _first(addr.province, addr.state, addr.city),
        addr.postcode,
        addr.country,
    ]
    parts = [part for part in parts if part]
    if not parts:
        return display_name
    return ", ".join(parts)


def district_from_display_name(display_name: str, addr: AddressBreakdown) -> str:
    """Best-effort district guess from free-text ``display_name``.

    Scans comma-separated segments from the third-last towards the front and
    returns the first one that is not the province, country, city or state.
    Heuristic; shaped after Cambodian and Thai address ordering.
    """
    parts = display_name.split(",")
    if len(parts) < 3:
        return ""
    excluded = {addr.province, addr.country, addr.city, addr.state}
    for index in range(len(parts) - 3, -1, -1):
        part = parts[index].strip()
        if part and part not in excluded:
            return part
    return ""


def extract_district(display_name: str, addr: AddressBreakdown) -> str:
    district = _first(
        addr.district,
        addr.county,
        addr.state_district,
        addr.subdistrict,
        addr.suburb,
        addr.city if not addr.province else "",
    )
    if district:
        return district
    return district_from_display_name(display_name, addr)


def extract_province(addr: AddressBreakdown) -> str:
    return _first(addr.province, addr.state, addr.city, addr.country)


def build_location(display_name: str, addr: AddressBreakdown) -> ResolvedLocation:
    return ResolvedLocation(
        full_address=format_full_address(display_name, addr),
        district=extract_district(display_name, addr),
        province=extract_province(addr),
    )
