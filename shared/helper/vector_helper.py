"""Vector math and serialization shared by embed and store clients.

Vectors travel through the code base as plain ``list[float]`` (pydantic-friendly)
and are converted to numpy float32 arrays only for math and persistence.
"""

from typing import Sequence

import numpy as np

# little-endian float32, the on-disk vector layout
VECTOR_DTYPE = np.dtype("<f4")


def normalize(vector: Sequence[float]) -> list[float]:
    """Scale a vector to unit length. A zero vector is returned unchanged.

    Args:
        vector (Sequence[float]): The raw vector.

    Returns:
        list[float]: The L2-normalised vector.
    """
    array = np.asarray(vector, dtype=np.float32)
    magnitude = float(np.linalg.norm(array))
    if magnitude == 0.0:
        return array.tolist()
    return (array / magnitude).tolist()


def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """Cosine similarity of two vectors.

    Never raises: returns 0.0 if either vector is None or empty, if their
    lengths differ, or if either has zero magnitude.

    Args:
        a (Sequence[float] | None): First vector.
        b (Sequence[float] | None): Second vector.

    Returns:
        float: Similarity in [-1, 1].
    """
    if a is None or b is None or len(a) == 0 or len(b) == 0 or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    magnitude_a = float(np.linalg.norm(va))
    magnitude_b = float(np.linalg.norm(vb))
    if magnitude_a == 0.0 or magnitude_b == 0.0:
        return 0.0
    similarity = float(np.dot(va, vb) / (magnitude_a * magnitude_b))
    # clamp rounding noise so callers can rely on the bounds
    return max(-1.0, min(1.0, similarity))


def serialize_vector(vector: Sequence[float] | None) -> bytes | None:
    """Serialize a vector as contiguous little-endian float32 bytes.

    Args:
        vector (Sequence[float] | None): The vector, or None.

    Returns:
        bytes | None: The raw bytes, or None if there is no vector.
    """
    if vector is None:
        return None
    return np.asarray(vector, dtype=VECTOR_DTYPE).tobytes()


def deserialize_vector(raw: bytes | None) -> list[float] | None:
    """Inverse of serialize_vector().

    Args:
        raw (bytes | None): Bytes as written by serialize_vector().

    Returns:
        list[float] | None: The vector, or None if raw is None.
    """
    if raw is None:
        return None
    return np.frombuffer(raw, dtype=VECTOR_DTYPE).astype(np.float32).tolist()


def has_vector(vector: Sequence[float] | None) -> bool:
    """True if the vector is present and non-empty."""
    return vector is not None and len(vector) > 0
