"""Locate the coordinate column and the address/district/province output columns."""

from __future__ import annotations

import logging
from typing import Sequence

from geoenrich.common.constants import COORDINATE_HEADER_HINTS, OUTPUT_HEADERS
from geoenrich.common.errors import SetupError
from geoenrich.common.logging import log_event
from geoenrich.common.models import ColumnLayout, Table
from geoenrich.pipeline.coordinates import looks_like_coordinates

logger = logging.getLogger(__name__)

MISSING = -1


def detect_coordinate_column(row: Sequence[str]) -> int:
    for index, cell in enumerate(row):
        if "," in cell and looks_like_coordinates(cell):
            return index
    return MISSING


def find_columns(rows: Sequence[Sequence[str]]) -> ColumnLayout:
    """Scan headers; fall back to sniffing the first data row for ``lat,lng`` text.

    Output columns that are absent come back as ``MISSING``.
    """
    header = rows[0]
    coordinate = address = district = province = MISSING

    for index, cell in enumerate(header):
        lowered = cell.strip().lower()
        if coordinate == MISSING and any(hint in lowered for hint in COORDINATE_HEADER_HINTS):
            coordinate = index
        if "address" in lowered:
            address = index
        if "district" in lowered:
            district = index
        if "province" in lowered:
            province = index

    if coordinate == MISSING and len(rows) > 1:
        coordinate = detect_coordinate_column(rows[1])

    if coordinate == MISSING:
        raise SetupError(
            "could not find latitude/longitude column. Please ensure the sheet has a column with "
            "coordinates in format 'lat,lng' (e.g. '13.536964,105.927722') or a header containing "
            "'latlg', 'lat', or 'coordinate'"
        )

    label = header[coordinate] if coordinate < len(header) else ""
    log_event(
        logger,
        f"found coordinates column: {label} (column {coordinate + 1})",
        stage="columns",
        event="COLUMNS_FOUND",
        status="ok",
    )
    return ColumnLayout(coordinate=coordinate, address=address, district=district, province=province)


def ensure_output_columns(table: Table, layout: ColumnLayout, header_width: int) -> ColumnLayout:
    """Append Address/District/Province after the last header unless all three exist."""
    if MISSING not in (layout.address, layout.district, layout.province):
        return layout

    added = ColumnLayout(
        coordinate=layout.coordinate,
        address=header_width,
        district=header_width + 1,
        province=header_width + 2,
    )
    for column, label in zip((added.address, added.district, added.province), OUTPUT_HEADERS):
        table.set_cell(0, column, label)
        log_event(
            logger,
            f"added {label} column at column {column + 1}",
            stage="columns",
            event="COLUMNS_ADDED",
            status="ok",
        )
    return added
