"""
Frame Codec
===========

JPEG encoding and decoding for the frame pipeline.

Design Rules:
    - This is the ONLY place in the codebase that encodes or decodes images
    - Stateless: encode/decode are pure apart from the configured quality
    - Validates shape and dtype
    - Fails fast with EncodeError / DecodeError on bad input

Raw input arrives either as BGR/grayscale arrays (OpenCV devices) or as
NV21 buffers (phone camera pipelines, SyntheticCapture in nv21 mode).
"""

import logging
from typing import Union

import cv2
import numpy as np


logger = logging.getLogger(__name__)


DEFAULT_JPEG_QUALITY = 70


class CodecError(Exception):
    """Base class for codec failures."""
    pass


class EncodeError(CodecError):
    """Raised when raw pixels cannot be encoded."""
    pass


class DecodeError(CodecError):
    """Raised when a payload cannot be decoded into an image."""
    pass


def nv21_to_bgr(data: Union[bytes, np.ndarray], width: int, height: int) -> np.ndarray:
    """
    Convert a planar NV21 buffer into a BGR image.

    NV21 is a full-resolution Y plane followed by a half-resolution plane
    of interleaved V/U samples, the layout most camera pipelines hand out.

    Args:
        data: NV21 bytes, width * height * 3 / 2 long
        width: Image width in pixels (even)
        height: Image height in pixels (even)

    Returns:
        BGR image as np.ndarray (H, W, 3), dtype=uint8

    Raises:
        EncodeError: If the buffer size does not match the dimensions
    """
    if width <= 0 or height <= 0 or width % 2 or height % 2:
        raise EncodeError(f"Invalid NV21 dimensions: {width}x{height}")

    expected = width * height * 3 // 2
    if isinstance(data, np.ndarray):
        yuv = data.astype(np.uint8, copy=False).ravel()
    else:
        yuv = np.frombuffer(data, dtype=np.uint8)
    if yuv.size != expected:
        raise EncodeError(
            f"NV21 buffer has {yuv.size} bytes, expected {expected} "
            f"for {width}x{height}"
        )

    return cv2.cvtColor(yuv.reshape(height * 3 // 2, width), cv2.COLOR_YUV2BGR_NV21)


def bgr_to_nv21(image: np.ndarray) -> bytes:
    """
    Convert a BGR image with even dimensions into an NV21 buffer.

    OpenCV only produces planar I420 (Y, U, V), so the chroma planes are
    re-interleaved as V/U pairs.

    Raises:
        EncodeError: If the image is not a uint8 BGR array with even sides
    """
    if not isinstance(image, np.ndarray) or image.dtype != np.uint8 or image.ndim != 3:
        raise EncodeError("bgr_to_nv21 expects a uint8 (H, W, 3) array")

    height, width = image.shape[:2]
    if width % 2 or height % 2:
        raise EncodeError(f"Invalid NV21 dimensions: {width}x{height}")

    i420 = cv2.cvtColor(image, cv2.COLOR_BGR2YUV_I420).ravel()
    luma = width * height
    quarter = luma // 4
    u = i420[luma:luma + quarter]
    v = i420[luma + quarter:]

    vu = np.empty(2 * quarter, dtype=np.uint8)
    vu[0::2] = v
    vu[1::2] = u
    return i420[:luma].tobytes() + vu.tobytes()


class FrameCodec:
    """
    JPEG codec backed by OpenCV.

    Attributes:
        quality: JPEG quality used for encoding (1-100)

    Example:
        codec = FrameCodec(quality=70)
        payload = codec.encode(bgr_image)
        image = codec.decode(payload)
    """

    def __init__(self, quality: int = DEFAULT_JPEG_QUALITY) -> None:
        if not 1 <= quality <= 100:
            raise ValueError("quality must be within 1..100")
        self.quality = quality

    def encode(self, pixels: np.ndarray) -> bytes:
        """
        Encode a BGR or grayscale image to JPEG.

        Args:
            pixels: uint8 array shaped (H, W, 3) or (H, W)

        Returns:
            JPEG bytes

        Raises:
            EncodeError: If the array is not encodable
        """
        if not isinstance(pixels, np.ndarray):
            raise EncodeError(f"Expected numpy array, got {type(pixels).__name__}")
        if pixels.dtype != np.uint8:
            raise EncodeError(f"Invalid dtype for encoding: {pixels.dtype}")
        if pixels.ndim not in (2, 3) or (pixels.ndim == 3 and pixels.shape[2] != 3):
            raise EncodeError(f"Invalid image shape for encoding: {pixels.shape}")
        if pixels.size == 0:
            raise EncodeError("Cannot encode an empty image")

        try:
            ok, encoded = cv2.imencode(
                ".jpg", pixels, [int(cv2.IMWRITE_JPEG_QUALITY), self.quality]
            )
        except cv2.error as e:
            raise EncodeError(f"cv2.imencode failed: {e}") from e

        if not ok:
            raise EncodeError("cv2.imencode returned failure")

        return encoded.tobytes()

    def encode_nv21(self, data: Union[bytes, np.ndarray], width: int, height: int) -> bytes:
        """Encode a planar NV21 buffer to JPEG."""
        return self.encode(nv21_to_bgr(data, width, height))

    def decode(self, data: bytes) -> np.ndarray:
        """
        Decode JPEG bytes to a BGR image.

        Args:
            data: Encoded image bytes

        Returns:
            BGR image as np.ndarray (H, W, 3), dtype=uint8

        Raises:
            DecodeError: If decoding fails or the image is invalid
        """
        if not data:
            raise DecodeError("Cannot decode an empty payload")

        try:
            image = cv2.imdecode(np.frombuffer(data, np.uint8), cv2.IMREAD_COLOR)
        except cv2.error as e:
            raise DecodeError(f"cv2.imdecode failed: {e}") from e

        if image is None:
            raise DecodeError(
                f"Failed to decode {len(data)} byte payload: cv2.imdecode returned None"
            )

        if image.ndim != 3 or image.shape[2] != 3:
            raise DecodeError(f"Invalid decoded image shape: {image.shape}")

        return image
