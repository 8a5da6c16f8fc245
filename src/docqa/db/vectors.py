"""Embedding encoding for sqlite-vec and distance → similarity conversion."""

from __future__ import annotations

import math

import sqlite_vec


def encode_embedding(embedding: list[float], dimensions: int) -> bytes:
    """Pack *embedding* as float32 for storage in a BLOB column.

    Raises:
        ValueError: If the vector is empty, has the wrong length, holds
            non-finite values, or is all zeros (cosine distance is undefined).
    """
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")
    if len(embedding) != dimensions:
        raise ValueError(
            f"Embedding has {len(embedding)} dimensions, expected {dimensions}"
        )
    if not all(math.isfinite(v) for v in embedding):
        raise ValueError("Embedding contains NaN or infinite values")
    if not any(embedding):
        raise ValueError("Embedding is a zero vector")
    return sqlite_vec.serialize_float32(embedding)


def similarity_from_distance(distance: float | None) -> float:
    """Convert a sqlite-vec cosine distance (0 = identical) to cosine similarity.

    sqlite-vec returns NULL when either vector has zero norm; such rows score 0.0.
    """
    if distance is None:
        return 0.0
    return 1.0 - distance
