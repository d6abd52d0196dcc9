"""
Compute backend capability negotiation.

The field simulation runs a per-element update over float buffers. A
backend reports up front whether it can hold and update buffers of a
given size; the engine uses the answer to choose between the full
simulation and a static fallback.
"""

from typing import Protocol

import numpy as np


class ComputeBackend(Protocol):
    name: str
    dtype: np.dtype

    def supports(self, n_elements: int) -> bool:
        """Can this backend run float buffers with ``n_elements`` particles?"""
        ...


class NumpyBackend:
    """Vectorized CPU backend: one array op per term, over every particle."""

    name = "numpy"

    def __init__(self, max_elements: int = 512 * 512, dtype=np.float32):
        self.max_elements = max_elements
        self.dtype = np.dtype(dtype)

    def supports(self, n_elements: int) -> bool:
        if n_elements <= 0 or n_elements > self.max_elements:
            return False
        return self.dtype.kind == "f"

    def buffer_bytes(self, n_elements: int) -> int:
        """Memory for two ping-ponged position and velocity buffers."""
        return 2 * 2 * n_elements * 3 * self.dtype.itemsize
