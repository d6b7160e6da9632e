from __future__ import annotations

import asyncio
import errno
import logging
import time
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol

from kps.config import AppConfig
from kps.domain.errors import CameraError, CameraFailure, ValidationError
from kps.domain.models import DetectedCode, ProductRecord
from kps.services.matching import BarcodeMatcher

log = logging.getLogger("kps.scan")

CAMERA_CONSTRAINTS = {
    "facing_mode": "environment",
    "width": 640,
    "height": 480,
    "frame_rate": 24,
}

DECODER_CONFIG = {
    "readers": ("ean_reader", "ean_8_reader", "code_128_reader"),
    "locate": True,
    "frequency": 10,
}


class CameraStream(Protocol):
    def is_live(self) -> bool: ...
    def stop(self) -> None: ...


class Camera(Protocol):
    async def acquire(self, constraints: dict) -> CameraStream: ...


class Decoder(Protocol):
    async def start(self, stream: CameraStream, config: dict) -> AsyncIterator[DetectedCode]: ...
    def stop(self) -> None: ...


class ScanState(str, Enum):
    IDLE = "idle"
    CAMERA_STARTING = "camera_starting"
    SCANNING = "scanning"
    CANDIDATE_FOUND = "candidate_found"
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"


# browser-style error names some camera adapters report
_ERROR_NAMES = {
    "NotAllowedError": CameraFailure.PERMISSION_DENIED,
    "NotFoundError": CameraFailure.NOT_FOUND,
    "NotSupportedError": CameraFailure.UNSUPPORTED,
    "NotReadableError": CameraFailure.BUSY,
}


def classify_camera_error(exc: BaseException) -> CameraError:
    if isinstance(exc, CameraError):
        return exc

    kind = _ERROR_NAMES.get(getattr(exc, "name", None) or type(exc).__name__)
    if kind is None:
        if isinstance(exc, PermissionError):
            kind = CameraFailure.PERMISSION_DENIED
        elif isinstance(exc, FileNotFoundError):
            kind = CameraFailure.NOT_FOUND
        elif isinstance(exc, NotImplementedError):
            kind = CameraFailure.UNSUPPORTED
        elif isinstance(exc, BlockingIOError) or (isinstance(exc, OSError) and exc.errno == errno.EBUSY):
            kind = CameraFailure.BUSY
        else:
            kind = CameraFailure.UNKNOWN
    return CameraError(kind, str(exc))


class ScanSession:
    """Camera + decoder lifecycle for one scanning run.

    IDLE -> CAMERA_STARTING -> SCANNING -> CANDIDATE_FOUND -> RESOLVED | NOT_FOUND

    A resolved code ends the run (the screen moves on to the product). A miss
    goes back to SCANNING on the same camera stream, or re-acquires the camera
    when its stream died. ``stop()`` is safe from any state, any number of times.
    """

    def __init__(
        self,
        camera: Camera,
        decoder: Decoder,
        catalog,
        cart,
        modes,
        config: Optional[AppConfig] = None,
        matcher: Optional[BarcodeMatcher] = None,
        tracker=None,
        on_product: Optional[Callable[[ProductRecord], None]] = None,
        on_status: Optional[Callable[[str, str], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.camera = camera
        self.decoder = decoder
        self.catalog = catalog
        self.cart = cart
        self.modes = modes
        self.config = config or AppConfig()
        self.matcher = matcher or BarcodeMatcher()
        self.tracker = tracker
        self.on_product = on_product
        self.on_status = on_status
        self.clock = clock

        self.state = ScanState.IDLE
        self.status: tuple[str, str] = ("", "")
        self.last_error: Optional[CameraError] = None
        self.last_product: Optional[ProductRecord] = None

        self._stream: Optional[CameraStream] = None
        self._decoder_running = False
        self._decoder_run = 0
        self._decoder_failures = 0
        self._busy = False
        self._last_code: Optional[str] = None
        self._last_scan_time: Optional[float] = None
        self._generation = 0
        self._tasks: set[asyncio.Task] = set()

    # ---- helpers ----

    @property
    def is_active(self) -> bool:
        return self.state is not ScanState.IDLE

    def _set_status(self, message: str, kind: str = "") -> None:
        self.status = (message, kind)
        if self.on_status is not None:
            self.on_status(message, kind)

    def _track(self, action: str, data: dict | None = None) -> None:
        if self.tracker is not None:
            self.tracker.track(action, data)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("scan_task_failed", exc_info=task.exception())

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _after(self, delay: float, action: Callable[[], Awaitable[None]]) -> asyncio.Task:
        async def _timer() -> None:
            await asyncio.sleep(delay)
            await action()

        return self._spawn(_timer())

    async def wait_pending(self) -> None:
        """Wait until no timer or decoder task of this session is left."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _reset_candidate(self) -> None:
        self._busy = False
        self._last_code = None

    # ---- lifecycle ----

    async def start(self) -> None:
        if not len(self.catalog):
            raise ValidationError("No products in catalog.")
        if self.is_active:
            self.stop()

        self._track("SCAN_START", {"has_camera": True})
        self._reset_candidate()
        self._last_scan_time = None
        self._decoder_failures = 0
        await self._initialize_camera()

    async def _initialize_camera(self) -> None:
        self._release_camera()
        self.state = ScanState.CAMERA_STARTING
        self.last_error = None
        generation = self._generation

        try:
            stream = await self.camera.acquire(dict(CAMERA_CONSTRAINTS))
        except Exception as exc:
            self._handle_camera_error(exc)
            return

        if generation != self._generation or self.state is not ScanState.CAMERA_STARTING:
            # stopped while the camera was being acquired
            stream.stop()
            return

        self._stream = stream
        self._set_status("Camera started, initializing scanner...")
        # decoders attached to a stream that is not rendering yet fail silently
        self._after(self.config.camera_settle_seconds, self._start_decoder)

    def _handle_camera_error(self, exc: BaseException) -> None:
        err = classify_camera_error(exc)
        self.last_error = err
        log.error("camera_failed kind=%s detail=%s", err.kind.value, err.detail)
        self._set_status(str(err), "error")
        self._after(self.config.camera_error_stop_seconds, self._stop_later)

    async def _start_decoder(self) -> None:
        if self._decoder_running or self._stream is None:
            return
        generation = self._generation

        try:
            codes = await self.decoder.start(self._stream, dict(DECODER_CONFIG))
        except Exception as exc:
            self._decoder_failures += 1
            log.warning("decoder_init_failed attempt=%s error=%s", self._decoder_failures, exc)
            self._set_status("Scanner error", "error")
            if self._decoder_failures > self.config.max_decoder_restarts:
                self._set_status("Scanner could not be started.", "error")
                self.stop()
                return
            await self._safe_restart()
            return

        if generation != self._generation:
            self.decoder.stop()
            return

        self._decoder_failures = 0
        self._decoder_running = True
        self._decoder_run += 1
        self.state = ScanState.SCANNING
        self._set_status("Scanning barcodes...")
        self._spawn(self._pump(codes, self._decoder_run))

    async def _pump(self, codes: AsyncIterator[DetectedCode], run: int) -> None:
        try:
            async for detected in codes:
                if run != self._decoder_run or not self._decoder_running:
                    break
                self.handle_detection(detected)
        except Exception as exc:
            if run != self._decoder_run or not self._decoder_running:
                return
            log.warning("decoder_stream_failed error=%s", exc)
            self._stop_decoder()
            await self._safe_restart()

    def _stop_decoder(self) -> None:
        if not self._decoder_running:
            return
        self._decoder_running = False
        try:
            self.decoder.stop()
        except Exception as exc:
            log.warning("decoder_stop_failed error=%s", exc)

    def _release_camera(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        except Exception as exc:
            log.warning("camera_stop_failed error=%s", exc)

    # ---- detection ----

    def handle_detection(self, detected: DetectedCode | str) -> bool:
        """Decoder callback. Returns True when the code became the candidate."""
        if self.state is not ScanState.SCANNING or self._busy:
            return False

        code = str(getattr(detected, "code", detected) or "").strip()
        if len(code) < self.config.min_code_length:
            return False

        now = self.clock()
        if self._last_scan_time is not None and (now - self._last_scan_time) * 1000 < self.config.scan_cooldown_ms:
            log.debug("scan_ignored_cooldown code=%s", code)
            return False
        if code == self._last_code:
            log.debug("scan_ignored_repeat code=%s", code)
            return False

        # flipped before anything can suspend
        self._busy = True
        self._last_scan_time = now
        self._last_code = code
        self._stop_decoder()
        self.state = ScanState.CANDIDATE_FOUND
        self._set_status(f"Code found: {code}", "success")
        self._process_candidate(code)
        return True

    def _process_candidate(self, code: str) -> None:
        product = self.matcher.resolve(code, self.catalog.records)

        if product is None:
            self.state = ScanState.NOT_FOUND
            log.info("scan_not_found code=%s", code)
            self._set_status("Product not found", "error")
            self._track("SCAN_FAILED", {"barcode": code})
            self._after(self.config.not_found_restart_seconds, self._restart_after_miss)
            return

        self.state = ScanState.RESOLVED
        self.last_product = product
        if self.modes.is_client_mode:
            self._set_status("Price found!", "success")
        else:
            # synchronous store write on the loop; fine for a local SQLite file
            self.cart.add(product)
            self._set_status("Added to cart", "success")
        if self.on_product is not None:
            self.on_product(product)

        log.info("scan_resolved code=%s name=%s mode=%s", code, product.name, self.modes.mode)
        self._track("SCAN_SUCCESS", {"barcode": code, "name": product.name})
        self._after(self.config.success_stop_seconds, self._stop_later)

    # ---- restarts ----

    async def _restart_after_miss(self) -> None:
        self._reset_candidate()
        await self._safe_restart()

    async def _safe_restart(self) -> None:
        """Decoder-only restart while the camera still delivers frames,
        full camera restart otherwise."""
        self._set_status("Restarting scanner...")
        self._stop_decoder()
        await asyncio.sleep(self.config.decoder_restart_seconds)

        stream = self._stream
        if stream is None or not stream.is_live():
            log.warning("camera_stream_lost restarting_camera")
            await self.restart_camera()
            return
        await self._start_decoder()

    async def restart_camera(self) -> None:
        self._set_status("Restarting camera...")
        self._stop_decoder()
        self._release_camera()
        await asyncio.sleep(self.config.camera_restart_seconds)
        await self._initialize_camera()

    async def _stop_later(self) -> None:
        self.stop()

    def stop(self) -> None:
        was_active = self.is_active or self._stream is not None
        self._generation += 1

        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

        self._stop_decoder()
        self._release_camera()
        self.state = ScanState.IDLE
        self._reset_candidate()
        self._last_scan_time = None

        if was_active:
            log.info("scan_stopped")
            self._track("SCAN_STOPPED")
