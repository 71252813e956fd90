from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from image_compressor.core.config import Config
from image_compressor.core.dimensions import resolve, validate_custom_bounds
from image_compressor.core.encoder import QualityTargetEncoder, validate_quality
from image_compressor.core.errors import Cancelled, CompressionError, EncodeFailure
from image_compressor.core.loader import load_source_image
from image_compressor.core.models import (
    CompressedResult,
    CompressionRequest,
    CustomBounds,
    ResolvedDimensions,
    SourceImage,
)
from image_compressor.core.presets import CUSTOM_PRESET, PRESETS, lookup

logger = logging.getLogger(__name__)

ResultCallback = Callable[[CompressedResult], None]
ErrorCallback = Callable[[CompressionError], None]
StateCallback = Callable[["CompressorState"], None]
AsyncRunner = Callable[[Callable[[], None]], None]
TimerFactory = Callable[[float, Callable[[], None]], Any]


class CompressorState(Enum):
    IDLE = "idle"
    READY = "ready"
    COMPRESSING = "compressing"


@dataclass(slots=True, eq=False)
class RequestHandle:
    sequence: int
    request: CompressionRequest
    dimensions: ResolvedDimensions
    future: Future = field(default_factory=Future)
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


def run_in_thread(work: Callable[[], None]) -> None:
    worker = threading.Thread(target=work, daemon=True)
    worker.start()


def start_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class RecompressionOrchestrator:
    """Turns user edits into compression requests, newest request wins.

    Every issued request gets a sequence number. A completion is published
    only if it belongs to the highest sequence issued so far and was not
    cancelled; anything else resolves its future with ``Cancelled`` and is
    dropped. Upload and preset switches compress immediately, quality and
    custom dimension edits wait for ``debounce_seconds`` of quiet.
    """

    def __init__(
        self,
        encoder: QualityTargetEncoder | None = None,
        *,
        on_result: ResultCallback | None = None,
        on_error: ErrorCallback | None = None,
        on_state_change: StateCallback | None = None,
        debounce_seconds: float = Config.DEBOUNCE_SECONDS,
        preset_name: str = Config.DEFAULT_PRESET,
        quality: int = Config.DEFAULT_QUALITY,
        run_async: AsyncRunner = run_in_thread,
        timer_factory: TimerFactory = start_timer,
    ) -> None:
        self.encoder = encoder or QualityTargetEncoder()
        self.on_result = on_result
        self.on_error = on_error
        self.on_state_change = on_state_change
        self.debounce_seconds = debounce_seconds
        self._run_async = run_async
        self._timer_factory = timer_factory

        self._lock = threading.Lock()
        self._publish_lock = threading.RLock()
        self._sequence = 0
        self._load_sequence = 0
        self._in_flight: RequestHandle | None = None
        self._timer: Any = None
        self._timer_token: object | None = None
        self._source: SourceImage | None = None
        self._result: CompressedResult | None = None
        self._state = CompressorState.IDLE

        self._preset_name = lookup(preset_name).key
        self._quality = validate_quality(quality)
        custom = PRESETS[CUSTOM_PRESET]
        self._custom_bounds: tuple[Any, Any] = (custom.max_width, custom.max_height)

    # ---- Read-only state ----
    @property
    def state(self) -> CompressorState:
        return self._state

    @property
    def current_result(self) -> CompressedResult | None:
        return self._result

    @property
    def source(self) -> SourceImage | None:
        return self._source

    @property
    def preset_name(self) -> str:
        return self._preset_name

    @property
    def quality(self) -> int:
        return self._quality

    @property
    def custom_bounds(self) -> tuple[Any, Any]:
        return self._custom_bounds

    @property
    def has_pending_edit(self) -> bool:
        return self._timer is not None

    # ---- Core interface ----
    def submit_compression_request(
        self,
        source: SourceImage,
        preset_name: str,
        quality_hint: int,
        custom_bounds: CustomBounds | tuple[Any, Any] | None = None,
    ) -> RequestHandle:
        """Validate and start a compression request without blocking.

        Raises UnknownPreset, InvalidBounds or InvalidQuality synchronously;
        nothing is cancelled and the current result is untouched in that case.
        """
        preset = lookup(preset_name)
        quality = validate_quality(quality_hint)

        bounds: CustomBounds | None = None
        if preset.is_custom:
            if isinstance(custom_bounds, CustomBounds):
                bounds = validate_custom_bounds(custom_bounds.width, custom_bounds.height)
            elif custom_bounds is not None:
                bounds = validate_custom_bounds(*custom_bounds)
        dimensions = resolve(source.width, source.height, preset, bounds)

        request = CompressionRequest(source=source, preset=preset, quality_hint=quality, custom_bounds=bounds)

        with self._lock:
            self._sequence += 1
            self._source = source
            handle = RequestHandle(sequence=self._sequence, request=request, dimensions=dimensions)
            previous = self._in_flight
            self._in_flight = handle

        if previous is not None:
            previous.cancel_event.set()
        self._set_state(CompressorState.COMPRESSING)

        logger.info(
            f"Issued request for {dimensions.width}x{dimensions.height}",
            extra={"sequence": handle.sequence, "preset": preset.key, "quality": quality},
        )
        self._run_async(lambda: self._execute(handle))
        return handle

    def cancel(self, handle: RequestHandle) -> None:
        handle.cancel_event.set()

    # ---- UI events ----
    def load_source(self, source: SourceImage) -> RequestHandle | None:
        self._cancel_timer()
        with self._lock:
            self._source = source
            self._result = None

        handle = self._submit_current()
        if handle is None:
            with self._lock:
                self._source = None
            self._settle_state()
        return handle

    def open_file(self, file_path: str | Path) -> None:
        with self._lock:
            self._load_sequence += 1
            load_sequence = self._load_sequence

        def decode() -> None:
            try:
                source = load_source_image(file_path)
            except CompressionError as error:
                if load_sequence == self._load_sequence:
                    self._report_error(error)
                return
            if load_sequence == self._load_sequence:
                self.load_source(source)

        self._run_async(decode)

    def change_preset(self, preset_name: str) -> RequestHandle | None:
        try:
            preset = lookup(preset_name)
        except CompressionError as error:
            self._report_error(error)
            return None

        self._cancel_timer()
        self._preset_name = preset.key
        return self._submit_current()

    def change_quality(self, quality: int) -> None:
        try:
            self._quality = validate_quality(quality)
        except CompressionError as error:
            self._report_error(error)
            return
        self._schedule_debounced()

    def change_custom_bounds(self, width: Any, height: Any) -> bool:
        self._custom_bounds = (width, height)
        try:
            validate_custom_bounds(width, height)
        except CompressionError as error:
            # Bounds only feed the custom preset; other pending edits still stand.
            if self._preset_name == CUSTOM_PRESET:
                self._cancel_timer()
            self._report_error(error)
            return False

        if self._preset_name == CUSTOM_PRESET:
            self._schedule_debounced()
        return True

    def reset(self) -> None:
        self._cancel_timer()
        with self._lock:
            self._sequence += 1
            self._load_sequence += 1
            stale = self._in_flight
            self._in_flight = None
            self._source = None
            self._result = None
        if stale is not None:
            stale.cancel_event.set()
        self._set_state(CompressorState.IDLE)

    # ---- Internals ----
    def _submit_current(self) -> RequestHandle | None:
        source = self._source
        if source is None:
            return None
        custom_bounds = self._custom_bounds if self._preset_name == CUSTOM_PRESET else None
        try:
            return self.submit_compression_request(source, self._preset_name, self._quality, custom_bounds)
        except CompressionError as error:
            self._report_error(error)
            return None

    def _schedule_debounced(self) -> None:
        if self._source is None:
            return

        token = object()
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            # The pending edit makes whatever is running stale.
            stale = self._in_flight
            self._timer_token = token
            self._timer = self._timer_factory(self.debounce_seconds, lambda: self._fire_debounced(token))
        if stale is not None:
            stale.cancel_event.set()

    def _fire_debounced(self, token: object) -> None:
        with self._lock:
            if token is not self._timer_token:
                # A newer edit replaced this timer.
                return
            self._timer = None
            self._timer_token = None
        self._submit_current()

    def _cancel_timer(self) -> None:
        with self._lock:
            timer = self._timer
            self._timer = None
            self._timer_token = None
        if timer is not None:
            timer.cancel()

    def _execute(self, handle: RequestHandle) -> None:
        request = handle.request
        try:
            result = self.encoder.encode(
                request.source,
                handle.dimensions,
                request.preset,
                request.quality_hint,
                cancel_event=handle.cancel_event,
            )
        except Cancelled as error:
            self._discard(handle, error)
        except CompressionError as error:
            self._complete(handle, error=error)
        except Exception as error:
            logger.exception("Unexpected encoder error", extra={"sequence": handle.sequence})
            failure = EncodeFailure(f"Failed to encode image: {error}")
            failure.__cause__ = error
            self._complete(handle, error=failure)
        else:
            self._complete(handle, result=result)

    def _is_current(self, handle: RequestHandle) -> bool:
        return handle.sequence == self._sequence and not handle.cancelled

    def _complete(
        self,
        handle: RequestHandle,
        result: CompressedResult | None = None,
        error: CompressionError | None = None,
    ) -> None:
        with self._publish_lock:
            with self._lock:
                if not self._is_current(handle):
                    stale = True
                else:
                    stale = False
                    self._in_flight = None
                    if result is not None:
                        self._result = result
                    elif self._result is None:
                        # First compression of this source failed: back to no image.
                        self._source = None

            if stale:
                self._discard(handle, Cancelled("Compression request was superseded."))
                return

            if result is not None:
                handle.future.set_result(result)
                logger.info(
                    f"Published result of {result.byte_size} bytes",
                    extra={"sequence": handle.sequence, "quality": result.quality_used, "byte_size": result.byte_size},
                )
                self._settle_state()
                if self.on_result:
                    self.on_result(result)
            else:
                handle.future.set_exception(error)
                logger.warning(f"Compression failed: {error}", extra={"sequence": handle.sequence})
                self._settle_state()
                self._report_error(error)

    def _discard(self, handle: RequestHandle, error: Cancelled) -> None:
        with self._lock:
            if self._in_flight is handle:
                self._in_flight = None
        if not handle.future.done():
            handle.future.set_exception(error)
        logger.debug("Discarded stale request", extra={"sequence": handle.sequence})
        self._settle_state()

    def _settle_state(self) -> None:
        with self._lock:
            if self._in_flight is not None:
                state = CompressorState.COMPRESSING
            elif self._source is not None:
                state = CompressorState.READY
            else:
                state = CompressorState.IDLE
        self._set_state(state)

    def _set_state(self, state: CompressorState) -> None:
        with self._lock:
            if state is self._state:
                return
            self._state = state
        if self.on_state_change:
            self.on_state_change(state)

    def _report_error(self, error: CompressionError) -> None:
        if isinstance(error, Cancelled):
            return
        if self.on_error:
            self.on_error(error)
