# chunkstat/storage/sizing.py
from __future__ import annotations

SIZE_BUCKETS: tuple[int, ...] = (8, 16, 32, 64, 128)
LARGE_ALIGNMENT = 8


def quantize(nbytes: int) -> int:
    """
    Round a raw byte count up to its allocation bucket.

    <= 128 → next value in SIZE_BUCKETS
    >  128 → next multiple of 8
    """
    if nbytes < 0:
        raise ValueError("nbytes must be >= 0")

    for bucket in SIZE_BUCKETS:
        if nbytes <= bucket:
            return bucket

    return -(-nbytes // LARGE_ALIGNMENT) * LARGE_ALIGNMENT


def quantized_size(element_count: int, element_size: int, header_bytes: int = 16) -> int:
    """Size charged for one backing identity: quantize(C + count * itemsize)."""
    if element_count < 0 or element_size <= 0:
        raise ValueError("element_count must be >= 0 and element_size > 0")
    return quantize(header_bytes + element_count * element_size)
