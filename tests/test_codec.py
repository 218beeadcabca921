"""
Frame Codec Tests
=================
"""

import numpy as np
import pytest

from videostream.stream.codec import (
    DecodeError,
    EncodeError,
    FrameCodec,
    bgr_to_nv21,
    nv21_to_bgr,
)


class TestFrameCodec:
    """Tests for JPEG encode/decode."""

    def test_encode_produces_jpeg(self, codec, sample_image):
        payload = codec.encode(sample_image)
        assert payload.startswith(b"\xff\xd8")
        assert payload.endswith(b"\xff\xd9")

    def test_decode_restores_shape(self, codec, sample_image):
        image = codec.decode(codec.encode(sample_image))
        assert image.shape == sample_image.shape
        assert image.dtype == np.uint8

    def test_grayscale_decodes_to_bgr(self, codec):
        gray = np.full((32, 40), 100, dtype=np.uint8)
        image = codec.decode(codec.encode(gray))
        assert image.shape == (32, 40, 3)

    def test_quality_affects_size(self, sample_image):
        low = FrameCodec(quality=10).encode(sample_image)
        high = FrameCodec(quality=95).encode(sample_image)
        assert len(low) < len(high)

    @pytest.mark.parametrize("quality", [0, 101])
    def test_invalid_quality(self, quality):
        with pytest.raises(ValueError):
            FrameCodec(quality=quality)

    def test_encode_rejects_wrong_dtype(self, codec):
        with pytest.raises(EncodeError):
            codec.encode(np.zeros((8, 8, 3), dtype=np.float32))

    def test_encode_rejects_wrong_shape(self, codec):
        with pytest.raises(EncodeError):
            codec.encode(np.zeros((8, 8, 4), dtype=np.uint8))

    def test_encode_rejects_non_array(self, codec):
        with pytest.raises(EncodeError):
            codec.encode(b"not pixels")

    def test_decode_garbage(self, codec):
        with pytest.raises(DecodeError):
            codec.decode(b"definitely not a jpeg")

    def test_decode_empty(self, codec):
        with pytest.raises(DecodeError):
            codec.decode(b"")


class TestNV21:
    """Tests for planar NV21 input."""

    def test_neutral_chroma_is_gray(self):
        width, height = 16, 8
        data = bytes([128]) * (width * height * 3 // 2)
        image = nv21_to_bgr(data, width, height)

        assert image.shape == (height, width, 3)
        assert int(image.max()) - int(image.min()) <= 2

    def test_size_mismatch(self):
        with pytest.raises(EncodeError):
            nv21_to_bgr(b"\x00" * 10, 16, 8)

    def test_odd_dimensions(self):
        with pytest.raises(EncodeError):
            nv21_to_bgr(b"\x00" * 100, 15, 8)

    def test_encode_nv21(self, codec):
        width, height = 32, 16
        data = np.full(width * height * 3 // 2, 128, dtype=np.uint8)
        payload = codec.encode_nv21(data, width, height)

        assert codec.decode(payload).shape == (height, width, 3)

    def test_bgr_to_nv21_layout(self):
        width, height = 16, 8
        image = np.full((height, width, 3), 128, dtype=np.uint8)
        data = bgr_to_nv21(image)

        assert len(data) == width * height * 3 // 2
        assert max(data[width * height:]) - min(data[width * height:]) <= 2

    def test_bgr_survives_nv21_conversion(self, sample_image):
        restored = nv21_to_bgr(bgr_to_nv21(sample_image), 64, 48)

        assert restored.shape == sample_image.shape
        # Chroma is subsampled, so compare averages per channel
        diff = np.abs(restored.astype(int).mean(axis=(0, 1)) - sample_image.mean(axis=(0, 1)))
        assert diff.max() < 12

    def test_bgr_to_nv21_rejects_odd_size(self):
        with pytest.raises(EncodeError):
            bgr_to_nv21(np.zeros((7, 8, 3), dtype=np.uint8))
