"""Apply row results to the destination table."""

from __future__ import annotations

from geoenrich.common.models import ColumnLayout, Resolved, RowResult, Table


class ResultWriter:
    def __init__(self, table: Table, layout: ColumnLayout) -> None:
        self.table = table
        self.layout = layout

    def apply(self, result: RowResult) -> bool:
        """Write a resolved row's three fields; skipped rows write nothing."""
        if not isinstance(result, Resolved):
            return False
        location = result.location
        self.table.set_cell(result.row_index, self.layout.address, location.full_address)
        self.table.set_cell(result.row_index, self.layout.district, location.district)
        self.table.set_cell(result.row_index, self.layout.province, location.province)
        return True
