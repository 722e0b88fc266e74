"""
Twiddle factor table for the parallel post-process.

T[k] = exp(-2*pi*i*k/N) = (cos(theta_k), sin(theta_k)), theta_k = -2*pi*k/N,
for k = 0 .. N-1. The angle is evaluated in double precision and both
components come from a single complex exponential, so cosine and sine are
rounded together before the table is cast to the working precision.
"""

import logging
from typing import Tuple

import numpy as np

from .errors import PreconditionError

logger = logging.getLogger(__name__)

TWO_PI = 2.0 * np.pi


def generate_twiddles(n: int, dtype=np.complex64) -> np.ndarray:
    """
    Generate the N-entry twiddle table.

    Parameters
    ----------
    n : int
        Transform length N (the full real length, not N/2)
    dtype : numpy dtype
        complex64 or complex128

    Returns
    -------
    np.ndarray
        Read-only complex array of length N
    """
    if n <= 0:
        raise PreconditionError(f"Twiddle table length must be positive, got {n}")
    dtype = np.dtype(dtype)
    if dtype not in (np.complex64, np.complex128):
        raise PreconditionError(f"Twiddle dtype must be complex64 or complex128, got {dtype}")

    theta = -TWO_PI * np.arange(n, dtype=np.float64) / n
    table = np.exp(1j * theta).astype(dtype)
    table.flags.writeable = False
    return table


class TwiddleCache:
    """
    Holds the table for the current transform size.

    The table is reused for every call with the same N and precision and is
    regenerated when either changes.
    """

    def __init__(self):
        self._key: Tuple[int, np.dtype] = None
        self._table: np.ndarray = None
        self.generated = 0

    def get(self, n: int, dtype=np.complex64) -> np.ndarray:
        key = (int(n), np.dtype(dtype))
        if key != self._key:
            logger.debug(f"Generating twiddle table: N={n}, dtype={key[1]}")
            self._table = generate_twiddles(n, dtype)
            self._key = key
            self.generated += 1
        return self._table

    def clear(self):
        self._key = None
        self._table = None

    @property
    def size(self) -> int:
        return 0 if self._key is None else self._key[0]
