from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from kps.domain.models import SaleRecord
from kps.services.clock import parse_timestamp, utc_now
from kps.services.ledger_service import SalesLedger
from kps.services.pricing import format_price

log = logging.getLogger(__name__)

RULE = "=" * 63
THIN = "-" * 63


def _local(ts: str) -> datetime:
    return parse_timestamp(ts).astimezone()


class ReportingService:
    def __init__(
        self,
        ledger: SalesLedger,
        app_version: str,
        file_prefix: str = "kps_",
        clock: Callable[[], datetime] = utc_now,
    ):
        self.ledger = ledger
        self.app_version = app_version
        self.file_prefix = file_prefix
        self.clock = clock

    def sales_by_day(self) -> list[tuple[date, list[SaleRecord]]]:
        """Sales grouped by local calendar day, newest day first, each day chronological."""
        grouped: dict[date, list[SaleRecord]] = defaultdict(list)
        for sale in sorted(self.ledger.sales, key=lambda s: parse_timestamp(s.timestamp)):
            grouped[_local(sale.timestamp).date()].append(sale)
        return sorted(grouped.items(), key=lambda kv: kv[0], reverse=True)

    def build_text_report(self) -> str:
        now = self.clock().astimezone()
        stats = self.ledger.get_stats(now)
        days = self.sales_by_day()

        out: list[str] = [
            RULE,
            "                 KIOSK PRICE SCANNER - FULL SALES LOG",
            f"      Generated: {now.strftime('%d.%m.%Y %H:%M:%S')}",
            f"      Device:    {self.ledger.device_id}",
            f"      Version:   {self.app_version}",
            RULE,
            "",
            "SALES SUMMARY",
            THIN,
            f"Total sales:   {stats.total_sales}",
            f"Total items:   {stats.total_items} pcs",
            f"Total revenue: {format_price(stats.total_revenue)}",
            f"Today:         {stats.today_sales} sales, {stats.today_items} pcs, {format_price(stats.today_revenue)}",
            "",
            "BY DAY",
            THIN,
        ]
        for day, sales in days:
            revenue = sum(s.total_amount for s in sales)
            items = sum(s.total_items for s in sales)
            out.append(f"{day.strftime('%d.%m.%Y')}: {len(sales)} sales, {items} pcs, {format_price(revenue)}")

        out += ["", RULE, "                        FULL SALES HISTORY", RULE]

        for day, sales in days:
            revenue = sum(s.total_amount for s in sales)
            items = sum(s.total_items for s in sales)
            out += [
                "",
                "=" * 60,
                f"  DAY: {day.strftime('%d.%m.%Y')} ({len(sales)} sales, {items} pcs, {format_price(revenue)})",
                "=" * 60,
                "",
            ]
            for sale in sales:
                device = f" [{sale.device_id}]" if sale.device_id else ""
                out.append(f"+{THIN}")
                out.append(f"| SALE: {sale.sale_id}{device}")
                out.append(f"| TIME: {_local(sale.timestamp).strftime('%d.%m.%Y %H:%M:%S')}")
                out.append(f"+{THIN}")
                for idx, it in enumerate(sale.items, start=1):
                    out.append(f"| {idx}. {it.name} ({it.platform})")
                    out.append(
                        f"|    {it.quantity} pcs x {format_price(it.unit_price)} = {format_price(it.line_total)}"
                    )
                out.append(f"+{THIN}")
                out.append(f"| TOTAL: {sale.total_items} pcs, {format_price(sale.total_amount)}")
                out.append(f"+{THIN}")
                out.append("")

        return "\n".join(out) + "\n"

    def export_text_report(self, target_dir: Path | str) -> Path:
        out_dir = Path(target_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        day = self.clock().astimezone().date().isoformat()
        path = out_dir / f"{self.file_prefix}sales_all_{day}.txt"
        # BOM so spreadsheet and notepad tools detect UTF-8
        path.write_text(self.build_text_report(), encoding="utf-8-sig")
        log.info("report_exported path=%s sales=%s", path, len(self.ledger.sales))
        return path

    def export_sales_excel(self, path: Path | str, period: Optional[str] = None) -> Path:
        sales = self.ledger.get_sales_by_period(period) if period else list(self.ledger.sales)
        stats = self.ledger.get_stats()
        wb = Workbook()

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = "Summary"
        ws["A1"].font = Font(bold=True, size=14)
        ws["A3"] = "Device"
        ws["B3"] = self.ledger.device_id

        rows = [
            ("Sales count", stats.total_sales),
            ("Items sold", stats.total_items),
            ("Revenue", stats.total_revenue),
            ("Sales today", stats.today_sales),
            ("Items today", stats.today_items),
            ("Revenue today", stats.today_revenue),
        ]
        for i, (label, val) in enumerate(rows):
            r = 5 + i
            ws[f"A{r}"] = label
            ws[f"B{r}"] = int(val)
            ws[f"B{r}"].number_format = "#,##0"
        set_widths(ws, {"A": 20, "B": 24})

        # -------- 2) Sales Detail --------
        ws2 = wb.create_sheet("Sales Detail")
        ws2.append(["Sale ID", "Datetime", "Device", "Product", "Platform", "Qty", "Unit Price", "Line Total"])
        bold_row(ws2, 1)
        for sale in sales:
            stamp = _local(sale.timestamp).strftime("%Y-%m-%d %H:%M:%S")
            for it in sale.items:
                ws2.append([
                    sale.sale_id, stamp, sale.device_id,
                    it.name, it.platform,
                    int(it.quantity), int(it.unit_price), int(it.line_total),
                ])

        ws2.freeze_panes = "A2"
        set_widths(ws2, {"A": 34, "B": 20, "C": 16, "D": 40, "E": 12, "F": 6, "G": 12, "H": 12})
        if ws2.max_row >= 2:
            ref = f"A1:{get_column_letter(8)}{ws2.max_row}"
            tab = Table(displayName="SalesDetail", ref=ref)
            tab.tableStyleInfo = TableStyleInfo(name="TableStyleMedium9", showRowStripes=True, showColumnStripes=False)
            ws2.add_table(tab)

        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        wb.save(target)
        log.info("sales_excel_exported path=%s sales=%s", target, len(sales))
        return target
