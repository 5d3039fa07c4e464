"""
Cache Serialization and Compression

Values are stored as UTF-8 JSON. Entries larger than the threshold
are LZ4 compressed. A 1-byte marker prefix records which encoding was
used so readers never have to guess.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import lz4.frame


logger = logging.getLogger(__name__)


# Compression type markers (1-byte prefix)
MARKER_UNCOMPRESSED = b'\x00'
MARKER_LZ4 = b'\x01'


@dataclass
class CompressionStats:
    """Track compression statistics."""
    original_size: int
    compressed_size: int

    @property
    def compression_ratio(self) -> float:
        if self.compressed_size == 0:
            return 0.0
        return self.original_size / self.compressed_size

    @property
    def savings_percent(self) -> float:
        """Calculate space savings percentage."""
        if self.original_size == 0:
            return 0.0
        return (1 - self.compressed_size / self.original_size) * 100


class CacheCompressor:
    """
    Handles compression/decompression of cache entries.

    Aggregate payloads are repetitive JSON (same keys on every row),
    which LZ4 shrinks 3-5x at negligible CPU cost.
    """

    def __init__(self, enabled: bool = True, threshold: int = 1024):
        self.enabled = enabled
        self.threshold = threshold

    def compress(self, data: bytes) -> Tuple[bytes, Optional[CompressionStats]]:
        """
        Compress data if beneficial.

        Returns:
            Tuple of (encoded_data, stats) or (encoded_data, None) when stored raw
        """
        if not self.enabled or len(data) < self.threshold:
            return MARKER_UNCOMPRESSED + data, None

        compressed = lz4.frame.compress(data)

        # Only use compression if it actually saves space
        if len(compressed) >= len(data):
            return MARKER_UNCOMPRESSED + data, None

        stats = CompressionStats(
            original_size=len(data),
            compressed_size=len(compressed) + 1,
        )
        return MARKER_LZ4 + compressed, stats

    def decompress(self, data: bytes) -> bytes:
        """Strip the marker and decompress if needed."""
        if not data:
            return data

        marker = data[0:1]
        payload = data[1:]

        if marker == MARKER_UNCOMPRESSED:
            return payload
        if marker == MARKER_LZ4:
            return lz4.frame.decompress(payload)

        # Written by something else, assume raw JSON
        logger.warning(f"Unknown compression marker: {marker!r}")
        return data


def serialize_value(value: Any) -> bytes:
    """
    Serialize a Python value to bytes for caching.

    Uses JSON with a default handler for dates and enums.
    """
    def default_handler(obj):
        if hasattr(obj, 'isoformat'):
            return obj.isoformat()
        if hasattr(obj, 'value'):
            return obj.value
        return str(obj)

    return json.dumps(value, default=default_handler, ensure_ascii=False).encode('utf-8')


def deserialize_value(data: bytes) -> Any:
    """Deserialize bytes back to a Python value."""
    if not data:
        return None
    return json.loads(data.decode('utf-8'))
