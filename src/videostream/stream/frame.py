"""
Frame Data Model
=================

Internal representation of one compressed image on its way to the wire.

Design Rules:
    - Payload is opaque, already-encoded image bytes
    - Immutable once constructed (a published frame is never modified)
    - Payload length must fit the uint32 wire length prefix
"""

from dataclasses import dataclass


MAX_PAYLOAD_LENGTH = 0xFFFFFFFF


@dataclass(frozen=True, slots=True)
class Frame:
    """
    One encoded frame held by a LatestFrameBuffer.

    Attributes:
        payload: Encoded image bytes, sent verbatim
        sequence: Publish counter of the owning buffer (1-based)
        timestamp: Monotonic time when the frame was published
    """

    payload: bytes
    sequence: int
    timestamp: float

    def __post_init__(self) -> None:
        if len(self.payload) > MAX_PAYLOAD_LENGTH:
            raise ValueError(
                f"Frame payload of {len(self.payload)} bytes exceeds "
                f"uint32 length prefix"
            )

    @property
    def length(self) -> int:
        """Payload length in bytes."""
        return len(self.payload)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the payload."""
        return (
            f"Frame(sequence={self.sequence}, "
            f"length={self.length}, "
            f"timestamp={self.timestamp:.3f})"
        )
