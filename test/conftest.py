import sys
from datetime import datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


# local noon, so "today" comparisons do not depend on the machine's timezone
NOON = datetime(2026, 10, 19, 12, 0, 0).astimezone()


def fixed_clock(at: datetime = NOON):
    return lambda: at


def make_record(barcode: str, name: str = "Game", platform: str = "PS4", **kw):
    from kps.domain.models import ProductRecord

    return ProductRecord(platform=platform, barcode=barcode, name=name, **kw)


class RecordingTracker:
    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    def track(self, action: str, data=None) -> None:
        self.events.append((action, dict(data or {})))

    def actions(self) -> list[str]:
        return [a for a, _ in self.events]
