"""
Tests for the quality-target encoder.
"""
import io
import threading

import pytest
from PIL import Image

from image_compressor.core.encoder import (
    QualityTargetEncoder,
    encode_jpeg,
    flatten_transparency,
    validate_quality,
)
from image_compressor.core.errors import Cancelled, EncodeFailure, InvalidQuality
from image_compressor.core.models import Preset, ResolvedDimensions, SourceImage
from image_compressor.core.presets import lookup

KB = 1024


class SizedCodec:
    """Fake codec whose output size is looked up per quality."""

    def __init__(self, sizes, default=1):
        self.sizes = sizes
        self.default = default
        self.calls = []

    def __call__(self, image, quality):
        self.calls.append(quality)
        return b"x" * self.sizes.get(quality, self.default)


def budget_preset(budget):
    return Preset(key="test", name="Test", max_width=2000, max_height=2000, target_byte_budget=budget)


@pytest.fixture
def source(make_source):
    return make_source(64, 48)


@pytest.fixture
def dims():
    return ResolvedDimensions(width=32, height=24)


class TestBudgetedSearch:
    """Tests for the linear quality descent."""

    def test_stops_at_first_quality_within_budget(self, source, dims):
        """Test 80/75/70 tried and 70 first meets a 500KB budget."""
        codec = SizedCodec({80: 700 * KB, 75: 600 * KB, 70: 480 * KB, 65: 400 * KB})
        encoder = QualityTargetEncoder(quality_step=5, quality_floor=50, codec=codec)

        result = encoder.encode(source, dims, lookup("etsy"), 80)

        assert result.quality_used == 70
        assert result.attempts == (80, 75, 70)
        assert codec.calls == [80, 75, 70]
        assert result.byte_size == 480 * KB
        assert result.within_budget

    def test_first_attempt_within_budget(self, source, dims):
        """Test that a fitting first encode is returned without searching."""
        codec = SizedCodec({}, default=10)
        encoder = QualityTargetEncoder(codec=codec)

        result = encoder.encode(source, dims, budget_preset(100), 90)

        assert result.quality_used == 90
        assert codec.calls == [90]

    def test_floor_returned_when_budget_unreachable(self, source, dims):
        """Test that the floor result is returned even if still over budget."""
        codec = SizedCodec({}, default=1000)
        encoder = QualityTargetEncoder(quality_step=5, quality_floor=50, codec=codec)

        result = encoder.encode(source, dims, budget_preset(10), 80)

        assert result.attempts == (80, 75, 70, 65, 60, 55, 50)
        assert result.quality_used == 50
        assert not result.within_budget

    def test_floor_always_tried(self, source, dims):
        """Test that a hint off the step grid still ends exactly at the floor."""
        codec = SizedCodec({}, default=1000)
        encoder = QualityTargetEncoder(quality_step=5, quality_floor=50, codec=codec)

        result = encoder.encode(source, dims, budget_preset(10), 82)

        assert result.attempts == (82, 77, 72, 67, 62, 57, 52, 50)
        assert result.quality_used == 50

    def test_hint_below_floor_encodes_once(self, source, dims):
        """Test that a hint under the floor is tried once and returned."""
        codec = SizedCodec({}, default=1000)
        encoder = QualityTargetEncoder(quality_step=5, quality_floor=50, codec=codec)

        result = encoder.encode(source, dims, budget_preset(10), 40)

        assert result.attempts == (40,)
        assert result.quality_used == 40

    def test_sizes_non_increasing(self, source, dims):
        """Test that byte size never grows as the search proceeds."""
        sizes = {90: 900, 85: 800, 80: 800, 75: 600, 70: 500}
        codec = SizedCodec(sizes)
        encoder = QualityTargetEncoder(codec=codec)

        result = encoder.encode(source, dims, budget_preset(550), 90)

        observed = [sizes[quality] for quality in result.attempts]
        assert observed == sorted(observed, reverse=True)
        assert result.quality_used == 70

    def test_real_jpeg_unreachable_budget(self, make_source):
        """Test a real JPEG search that bottoms out at the floor."""
        source = make_source(120, 90)
        encoder = QualityTargetEncoder(quality_step=10, quality_floor=50)

        result = encoder.encode(source, ResolvedDimensions(60, 45), budget_preset(1), 90)

        assert result.attempts == (90, 80, 70, 60, 50)
        assert result.encoded_bytes[:2] == b"\xff\xd8"
        assert not result.within_budget


class TestUnboundedEncode:
    """Tests for presets without a byte budget."""

    def test_encodes_once_at_hint(self, source, dims):
        """Test that the custom preset is encoded once, whatever the size."""
        codec = SizedCodec({}, default=10 * 1024 * 1024)
        encoder = QualityTargetEncoder(codec=codec)

        result = encoder.encode(source, dims, lookup("custom"), 65)

        assert codec.calls == [65]
        assert result.quality_used == 65
        assert result.within_budget
        assert (result.width, result.height) == (32, 24)


class TestResampling:
    """Tests for resizing and format normalization."""

    def test_output_has_resolved_dimensions(self, make_source):
        """Test that the encoded JPEG has the resolved size."""
        encoder = QualityTargetEncoder()
        result = encoder.encode(make_source(400, 300), ResolvedDimensions(200, 150), lookup("custom"), 80)

        with Image.open(io.BytesIO(result.encoded_bytes)) as decoded:
            assert decoded.format == "JPEG"
            assert decoded.size == (200, 150)

    def test_same_size_is_still_reencoded(self, make_source):
        """Test that an unchanged size at maximum quality still emits JPEG."""
        source = make_source(50, 40, mode="RGBA", name="logo.png")
        encoder = QualityTargetEncoder()

        result = encoder.encode(source, ResolvedDimensions(50, 40), lookup("custom"), 100)

        with Image.open(io.BytesIO(result.encoded_bytes)) as decoded:
            assert decoded.format == "JPEG"
            assert decoded.mode == "RGB"
            assert decoded.size == (50, 40)

    def test_flatten_transparency_uses_white(self):
        """Test that transparent pixels become white."""
        image = Image.new("RGBA", (4, 4), (0, 0, 0, 0))
        flattened = flatten_transparency(image)
        assert flattened.mode == "RGB"
        assert flattened.getpixel((0, 0)) == (255, 255, 255)

    def test_flatten_converts_grayscale(self):
        """Test that non-RGB modes are converted to RGB."""
        assert flatten_transparency(Image.new("L", (4, 4), 0)).mode == "RGB"

    def test_nearest_resampling_rejected(self):
        """Test that nearest-neighbour resampling is not allowed."""
        with pytest.raises(ValueError):
            QualityTargetEncoder(resample=Image.Resampling.NEAREST)

    def test_encode_jpeg_lower_quality_is_smaller(self):
        """Test that the codec facility shrinks output at lower quality."""
        image = Image.effect_noise((128, 128), 64).convert("RGB")
        assert len(encode_jpeg(image, 50)) < len(encode_jpeg(image, 90))


class TestFailures:
    """Tests for encoder error handling."""

    def test_zero_area_source(self, dims):
        """Test that a zero-area source raises EncodeFailure."""
        source = SourceImage(image=Image.new("RGB", (1, 1)), width=0, height=0, byte_size=0)
        with pytest.raises(EncodeFailure):
            QualityTargetEncoder().encode(source, dims, lookup("custom"), 80)

    def test_codec_error_wrapped(self, source, dims):
        """Test that codec errors surface as EncodeFailure."""

        def broken_codec(image, quality):
            raise OSError("encoder error -2")

        encoder = QualityTargetEncoder(codec=broken_codec)
        with pytest.raises(EncodeFailure) as exc_info:
            encoder.encode(source, dims, lookup("etsy"), 80)
        assert isinstance(exc_info.value.__cause__, OSError)

    def test_empty_output_rejected(self, source, dims):
        """Test that an empty codec output is treated as a failure."""
        encoder = QualityTargetEncoder(codec=lambda image, quality: b"")
        with pytest.raises(EncodeFailure):
            encoder.encode(source, dims, lookup("custom"), 80)

    @pytest.mark.parametrize("quality", [-1, 101, "80", 80.0, None, True])
    def test_invalid_quality(self, quality):
        """Test that out-of-range or non-integer quality is rejected."""
        with pytest.raises(InvalidQuality):
            validate_quality(quality)


class TestCancellation:
    """Tests for cooperative cancellation."""

    def test_cancelled_before_start(self, source, dims):
        """Test that a pre-cancelled request never reaches the codec."""
        codec = SizedCodec({})
        event = threading.Event()
        event.set()

        with pytest.raises(Cancelled):
            QualityTargetEncoder(codec=codec).encode(source, dims, lookup("etsy"), 80, cancel_event=event)
        assert codec.calls == []

    def test_cancelled_between_iterations(self, source, dims):
        """Test that the search stops at the next iteration after cancellation."""
        event = threading.Event()

        def cancelling_codec(image, quality):
            event.set()
            return b"x" * 1000

        encoder = QualityTargetEncoder(codec=cancelling_codec)
        with pytest.raises(Cancelled):
            encoder.encode(source, dims, budget_preset(10), 80, cancel_event=event)
