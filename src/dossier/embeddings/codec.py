"""Binary vector encoding shared by every writer and reader of embeddings.

Vectors are stored as packed little-endian float32 values with no header;
the element count is the provider dimensionality.
"""

import struct
from typing import Optional, Sequence

FLOAT_SIZE = 4


def encode_vector(vector: Sequence[float]) -> bytes:
    return struct.pack(f"<{len(vector)}f", *vector)


def decode_vector(blob: bytes, dimension: Optional[int] = None) -> list[float]:
    """
    Decode a stored vector.

    Args:
        blob: Packed float32 values
        dimension: Expected element count, checked when given

    Raises:
        ValueError: If the blob length does not match
    """
    if len(blob) % FLOAT_SIZE:
        raise ValueError(f"Vector blob length {len(blob)} is not a multiple of {FLOAT_SIZE}")
    count = len(blob) // FLOAT_SIZE
    if dimension is not None and count != dimension:
        raise ValueError(f"Expected {dimension} dimensions, got {count}")
    return list(struct.unpack(f"<{count}f", blob))
