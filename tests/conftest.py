"""
Shared fixtures for the compression pipeline tests.
"""
import io

import pytest
from PIL import Image

from image_compressor.core.errors import EncodeFailure
from image_compressor.core.models import CompressedResult, SourceImage
from image_compressor.core.orchestrator import RecompressionOrchestrator


def encode_image(image, fmt="JPEG", **save_kwargs):
    buffer = io.BytesIO()
    image.save(buffer, format=fmt, **save_kwargs)
    return buffer.getvalue()


class ManualRunner:
    """Collects async work so tests decide when (and in which order) it runs."""

    def __init__(self):
        self.pending = []

    def __call__(self, work):
        self.pending.append(work)

    def run(self, index=0):
        work = self.pending.pop(index)
        work()

    def run_all(self):
        while self.pending:
            self.run(0)


class FakeTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.callback()


class TimerRecorder:
    def __init__(self):
        self.timers = []

    def __call__(self, delay, callback):
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def active(self):
        return [timer for timer in self.timers if not timer.cancelled]


class StubEncoder:
    """Returns a tiny result per call; ignores cancellation on purpose."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls = []

    def encode(self, source, dimensions, preset, quality_hint, cancel_event=None):
        self.calls.append((preset.key, quality_hint, dimensions.as_tuple()))
        if quality_hint in self.fail_on:
            raise EncodeFailure(f"Codec failed at quality {quality_hint}")
        return CompressedResult(
            encoded_bytes=b"\xff\xd8jpeg",
            width=dimensions.width,
            height=dimensions.height,
            byte_size=6,
            quality_used=quality_hint,
            attempts=(quality_hint,),
        )


class Events:
    def __init__(self):
        self.results = []
        self.errors = []
        self.states = []


@pytest.fixture
def make_source():
    """Factory for in-memory source images."""

    def factory(width=400, height=300, mode="RGB", name="photo.jpg", byte_size=None):
        image = Image.new(mode, (width, height), color="red" if mode != "L" else 128)
        return SourceImage(
            image=image,
            width=width,
            height=height,
            byte_size=byte_size if byte_size is not None else width * height * 3,
            name=name,
            format="JPEG",
        )

    return factory


@pytest.fixture
def runner():
    return ManualRunner()


@pytest.fixture
def timers():
    return TimerRecorder()


@pytest.fixture
def stub_encoder():
    return StubEncoder()


@pytest.fixture
def events():
    return Events()


@pytest.fixture
def orchestrator(stub_encoder, runner, timers, events):
    return RecompressionOrchestrator(
        stub_encoder,
        on_result=events.results.append,
        on_error=events.errors.append,
        on_state_change=events.states.append,
        debounce_seconds=1.0,
        preset_name="etsy",
        quality=80,
        run_async=runner,
        timer_factory=timers,
    )
