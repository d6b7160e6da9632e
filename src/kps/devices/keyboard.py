from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional

from kps.domain.errors import CameraError, CameraFailure
from kps.domain.models import DetectedCode


class _WedgeStream:
    def __init__(self, wedge: "KeyboardWedge"):
        self._wedge = wedge
        self._stopped = False

    def is_live(self) -> bool:
        return self._wedge.is_open and not self._stopped

    def stop(self) -> None:
        self._stopped = True


class KeyboardWedge:
    """USB keyboard-wedge scanner: it "types" each code followed by Enter.

    Acts as both the camera and the decoder of a scan session. Lines fed
    while no decoder run is active are kept for the next run; lines fed to a
    run that has been stopped are dropped, as a camera decoder would.
    """

    def __init__(self):
        self.is_open = True
        self._queue: Optional[asyncio.Queue] = None
        self._pending: list[str] = []

    def feed(self, line: str) -> None:
        code = (line or "").strip()
        if not code:
            return
        if self._queue is not None:
            self._queue.put_nowait(code)
        else:
            self._pending.append(code)

    async def acquire(self, constraints: dict) -> _WedgeStream:
        if not self.is_open:
            raise CameraError(CameraFailure.NOT_FOUND, "keyboard input closed")
        return _WedgeStream(self)

    async def start(self, stream: _WedgeStream, config: dict) -> AsyncIterator[DetectedCode]:
        queue: asyncio.Queue = asyncio.Queue()
        for code in self._pending:
            queue.put_nowait(code)
        self._pending.clear()
        self._queue = queue
        return self._codes(queue)

    async def _codes(self, queue: asyncio.Queue) -> AsyncIterator[DetectedCode]:
        while True:
            code = await queue.get()
            if code is None:
                return
            yield DetectedCode(code=code, format="keyboard")

    def stop(self) -> None:
        if self._queue is not None:
            self._queue.put_nowait(None)
            self._queue = None

    def close(self) -> None:
        self.is_open = False
        self.stop()
