from __future__ import annotations

import logging
from dataclasses import dataclass

from kps.domain.models import ProductRecord

log = logging.getLogger(__name__)

MIN_ROW_CELLS = 29


@dataclass(frozen=True)
class PlatformBlock:
    """One platform's column range inside a catalog row."""

    start: int
    markers: tuple[str, ...]
    code_type: str = ""
    has_code: bool = True

    def extract(self, cells: list[str]) -> ProductRecord | None:
        platform = cells[self.start]
        if not platform or not any(m in platform for m in self.markers):
            return None

        barcode = cells[self.start + 1]
        name = cells[self.start + 2]
        if not barcode or not name:
            return None
        if "/" in barcode:
            barcode = "/".join(b.strip() for b in barcode.split("/"))

        # blocks without a code column are one cell narrower
        offset = self.start + (4 if self.has_code else 3)
        return ProductRecord(
            platform=platform,
            barcode=barcode,
            name=name,
            code=cells[self.start + 3] if self.has_code else "",
            code_type=self.code_type,
            language=cells[offset],
            wholesale_price=cells[offset + 1],
            marketplace_price=cells[offset + 2],
        )


PLATFORM_BLOCKS: tuple[PlatformBlock, ...] = (
    PlatformBlock(start=0, markers=("PS4",), code_type="CUSA"),
    PlatformBlock(start=8, markers=("PS5",), code_type="PPSA"),
    PlatformBlock(start=16, markers=("NS", "Switch"), has_code=False),
    PlatformBlock(start=23, markers=("XBOX",), has_code=False),
)


def split_row(row: str, delimiter: str = ",") -> list[str]:
    cells: list[str] = []
    current: list[str] = []
    in_quotes = False
    for ch in row:
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == delimiter and not in_quotes:
            cells.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    cells.append("".join(current).strip())
    return cells


class CsvCatalogParser:
    def __init__(self, delimiter: str = ",", blocks: tuple[PlatformBlock, ...] = PLATFORM_BLOCKS):
        self.delimiter = delimiter
        self.blocks = blocks

    def parse(self, text: str) -> list[ProductRecord]:
        """
        First line is a header. Each row carries up to four products side by side:
          PS4 (0-6) | PS5 (8-14) | Switch (16-21) | Xbox (23-28)
        Short or broken rows are skipped, never fatal.
        """
        records: list[ProductRecord] = []
        rows = (text or "").split("\n")

        for line_no, row in enumerate(rows[1:], start=2):
            if not row.strip():
                continue
            try:
                cells = split_row(row, self.delimiter)
                if len(cells) < MIN_ROW_CELLS:
                    log.debug("catalog_row_skipped line=%s cells=%s", line_no, len(cells))
                    continue
                for block in self.blocks:
                    record = block.extract(cells)
                    if record is not None:
                        records.append(record)
            except (IndexError, ValueError) as e:
                log.warning("catalog_row_failed line=%s error=%s", line_no, e)

        return records
