from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Callable, Optional, TextIO

from kps.application.container import AppContainer, build_scan_session
from kps.devices.keyboard import KeyboardWedge
from kps.domain.errors import AppError
from kps.domain.models import ProductRecord
from kps.services.pricing import format_price

log = logging.getLogger(__name__)

HELP = """\
Scan a barcode (or type it and press Enter) to look it up.
Commands:
  /search <text>        search the catalog
  /add <n>              add result n of the last search to the cart
  /cart                 show the cart
  /plus <n> /minus <n>  change quantity of cart line n
  /remove <n>           remove cart line n
  /clear                empty the cart
  /sell                 record the cart as a sale
  /stats                sales statistics
  /sync                 merge ledgers of other devices now
  /report               export the text sales report
  /excel [today]        export the sales workbook
  /mode client          switch to client mode
  /mode operator <pw>   switch to operator mode
  /refresh              reload the catalog
  /restart              restart the scanner
  /erase                delete every device's sales history
  /quit                 exit
"""


class ConsoleApp:
    """Line-oriented front end: plain lines are barcodes, ``/`` lines are commands."""

    def __init__(
        self,
        container: AppContainer,
        exports_dir: Path,
        stdin: TextIO = sys.stdin,
        out: Callable[[str], None] = print,
    ):
        self.c = container
        self.exports_dir = Path(exports_dir)
        self.stdin = stdin
        self.out = out
        self.wedge = KeyboardWedge()
        self.session = build_scan_session(
            container,
            camera=self.wedge,
            decoder=self.wedge,
            on_product=self._show_product,
            on_status=self._show_status,
        )
        self.results: list[ProductRecord] = []
        self._running = False

    # ---- display ----

    def _show_status(self, message: str, kind: str) -> None:
        if kind:
            self.out(f"[{kind}] {message}")

    def _show_product(self, p: ProductRecord) -> None:
        price = self.c.cart.pricer(p.wholesale_price)
        self.out(f"  {p.name} ({p.platform}) {p.language}  ->  {format_price(price)}")

    def _show_cart(self) -> None:
        lines = self.c.cart.lines
        if not lines:
            self.out("Cart is empty.")
            return
        for i, ln in enumerate(lines, start=1):
            self.out(f"{i:>3}. {ln.name} ({ln.platform}) {ln.quantity} x {format_price(ln.unit_price)}"
                     f" = {format_price(ln.line_total)}")
        total, count = self.c.cart.totals()
        self.out(f"     Total: {count} pcs, {format_price(total)}")

    # ---- commands ----

    @staticmethod
    def _index(arg: str) -> int:
        try:
            return int(arg) - 1
        except ValueError:
            return -1

    async def scan(self, code: str) -> None:
        if not self.session.is_active:
            await self.session.start()
        self.wedge.feed(code)

    async def handle(self, line: str) -> bool:
        """Run one input line. Returns False when the app should exit."""
        line = line.strip()
        if not line:
            return True
        if not line.startswith("/"):
            await self.scan(line)
            return True

        cmd, _, arg = line[1:].partition(" ")
        arg = arg.strip()
        cart = self.c.cart

        if cmd in ("quit", "exit", "q"):
            return False
        if cmd == "help":
            self.out(HELP)
        elif cmd == "search":
            self.results = self.c.search.search(
                self.c.catalog.records, arg, limit=self.c.config.search_result_limit
            )
            if not self.results:
                self.out("Nothing found.")
            for i, p in enumerate(self.results, start=1):
                self.out(f"{i:>3}. {p.name} ({p.platform}) {p.code} -> {format_price(cart.pricer(p.wholesale_price))}")
        elif cmd == "add":
            idx = self._index(arg)
            if not 0 <= idx < len(self.results):
                self.out("No such search result.")
            else:
                line_ = cart.add(self.results[idx])
                self.out(f"Added: {line_.name} (x{line_.quantity})")
        elif cmd == "cart":
            self._show_cart()
        elif cmd in ("plus", "minus"):
            cart.adjust_quantity(self._index(arg), 1 if cmd == "plus" else -1)
            self._show_cart()
        elif cmd == "remove":
            cart.remove(self._index(arg))
            self._show_cart()
        elif cmd == "clear":
            cart.clear()
            self.out("Cart cleared.")
        elif cmd == "sell":
            sale = self.c.checkout.complete_sale()
            self.out(f"Sale {sale.sale_id}: {sale.total_items} pcs, {format_price(sale.total_amount)}")
        elif cmd == "stats":
            s = self.c.ledger.get_stats()
            self.out(f"Total: {s.total_sales} sales, {s.total_items} pcs, {format_price(s.total_revenue)}")
            self.out(f"Today: {s.today_sales} sales, {s.today_items} pcs, {format_price(s.today_revenue)}")
        elif cmd == "sync":
            sales, events = self.c.ledger.reconcile()
            self.out(f"Merged {sales} sales and {events} events.")
        elif cmd == "report":
            path = self.c.reporting.export_text_report(self.exports_dir)
            self.out(f"Report saved: {path}")
        elif cmd == "excel":
            period = "today-sales" if arg == "today" else None
            path = self.exports_dir / f"{self.c.config.export_prefix}sales_{arg or 'all'}.xlsx"
            self.out(f"Workbook saved: {self.c.reporting.export_sales_excel(path, period)}")
        elif cmd == "mode":
            target, _, secret = arg.partition(" ")
            if target == "client":
                self.c.modes.switch_to_client()
            elif target == "operator":
                self.c.modes.switch_to_operator(secret.strip())
            self.out(f"Mode: {self.c.modes.mode}")
        elif cmd == "refresh":
            result = await asyncio.to_thread(self.c.catalog.load)
            self.out(f"Catalog: {result.count} products ({result.source})")
        elif cmd == "restart":
            if self.session.is_active:
                await self.session.restart_camera()
        elif cmd == "erase":
            answer = await self._readline("Type YES to delete all sales history: ")
            if answer.strip() == "YES":
                removed = self.c.ledger.clear_all()
                self.out(f"Deleted {removed} ledgers.")
        else:
            self.out(f"Unknown command: /{cmd} (try /help)")
        return True

    # ---- loop ----

    async def _readline(self, prompt: str = "") -> str:
        if prompt:
            self.out(prompt)
        return await asyncio.to_thread(self.stdin.readline)

    async def run(self) -> None:
        result = await asyncio.to_thread(self.c.catalog.load)
        self.out(f"Catalog: {result.count} products ({result.source}). Mode: {self.c.modes.mode}. /help for commands.")
        self.c.maintenance.start()
        self._running = True
        try:
            while self._running:
                raw = await self._readline()
                if raw == "":
                    break
                try:
                    self._running = await self.handle(raw)
                except AppError as e:
                    self.out(str(e))
        finally:
            self.session.stop()
            self.wedge.close()
            await self.c.maintenance.stop(timeout=1.0)
            log.info("console_closed")
