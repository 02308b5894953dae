"""
Ranking and spreadsheet export of section usage.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from section_crawler.sections import Section

logger = logging.getLogger(__name__)

SHEET_NAME = "Sections"


class ReportError(Exception):
    """The report file could not be created or written."""


@dataclass(frozen=True, slots=True)
class ReportRow:
    """Immutable snapshot of one section at export time."""
    name: str
    count: int
    is_homepage: bool
    unused: bool

    @classmethod
    def from_section(cls, section: Section) -> "ReportRow":
        return cls(section.name, section.count, section.is_homepage, section.unused)


def rank_sections(sections: Iterable[Section]) -> List[ReportRow]:
    """Rows by usage count descending; equal counts ordered by name."""
    rows = [ReportRow.from_section(s) for s in sections]
    return sorted(rows, key=lambda r: (-r.count, r.name))


def header_row(track_homepage: bool) -> List[str]:
    if track_homepage:
        return ["Section Name", "Usage Count", "Used on Homepage", "Unused"]
    return ["Section Name", "Usage Count", "Unused"]


def build_workbook(rows: Iterable[ReportRow], *, track_homepage: bool = False) -> Workbook:
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_NAME

    headers = header_row(track_homepage)
    ws.append(headers)
    for col in range(1, len(headers) + 1):
        ws.cell(row=1, column=col).font = Font(bold=True)

    for row in rows:
        if track_homepage:
            ws.append([row.name, row.count, row.is_homepage, row.unused])
        else:
            ws.append([row.name, row.count, row.unused])

    ws.column_dimensions[get_column_letter(1)].width = 40
    for col in range(2, len(headers) + 1):
        ws.column_dimensions[get_column_letter(col)].width = 18
    return wb


def write_report(rows: Iterable[ReportRow], path: Path | str, *, track_homepage: bool = False) -> Path:
    """Write the ranked rows to an .xlsx file and return its path."""
    output = Path(path)
    wb = build_workbook(rows, track_homepage=track_homepage)
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        wb.save(output)
    except OSError as e:
        raise ReportError(f"Error saving xlsx file {output}: {e}") from e
    logger.debug("Wrote report to %s", output)
    return output
