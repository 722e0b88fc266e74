"""
Sequential real-to-complex post-process (reference form).

A real signal x of even length N, read as N/2 complex samples
z[m] = x[2m] + i*x[2m+1], has the half-length spectrum Z[k]. With
M = N/2 and W^k = exp(-2*pi*i*k/N) the full spectrum of x is

    X[k] = 1/2 * (Z[k] + conj(Z[M-k])) - i/2 * W^k * (Z[k] - conj(Z[M-k]))

for 0 < k < M, and X[0] = Re Z[0] + Im Z[0], X[M] = Re Z[0] - Im Z[0].
Written per bin this is

    X[r] = 1/2 * Z[r] * (1 - i*W^r) + 1/2 * conj(Z[M-r]) * (1 + i*W^r)

which is what this module evaluates, one bin at a time. The parallel
kernel evaluates the same identity for the pair (p, M-p) at once.
"""

import cmath
import logging
import math
import time
from typing import Optional

import numpy as np
from numba import jit

from .errors import PreconditionError
from .layout import (
    buffers_overlap,
    check_buffer,
    check_count,
    check_output_layout,
    check_transform_size,
    input_layout,
    output_layout,
)

logger = logging.getLogger(__name__)


@jit(nopython=True, cache=True)
def _post_process_signal(n, inp, in_base, out, out_base):
    """Post-process one half spectrum starting at inp[in_base]."""
    half = n // 2
    z0 = inp[in_base]

    out[out_base] = complex(z0.real + z0.imag, 0.0)
    for r in range(1, half):
        omega = cmath.exp(complex(0.0, -2.0 * math.pi * r / n))
        z_r = inp[in_base + r]
        z_c = inp[in_base + half - r].conjugate()
        out[out_base + r] = (0.5 * z_r * (1.0 - 1j * omega)
                             + 0.5 * z_c * (1.0 + 1j * omega))
    out[out_base + half] = complex(z0.real - z0.imag, 0.0)


@jit(nopython=True, cache=True)
def _post_process_batch(n, batch, rows, inp, input_stride, input_distance,
                        out, output_stride, output_distance):
    for b in range(batch):
        for row in range(rows):
            _post_process_signal(
                n,
                inp, b * input_distance + row * input_stride,
                out, b * output_distance + row * output_stride,
            )


def post_process_sequential(
    n: int,
    batch: int,
    half_spectrum: np.ndarray,
    final_spectrum: np.ndarray,
    rows: int = 1,
    input_stride: Optional[int] = None,
    output_stride: Optional[int] = None,
    input_distance: Optional[int] = None,
    output_distance: Optional[int] = None
) -> np.ndarray:
    """
    Turn half-length complex spectra into (N/2 + 1)-point real-input spectra.

    Parameters
    ----------
    n : int
        Real signal length N (even, >= 4)
    batch : int
        Number of signals
    half_spectrum : np.ndarray
        Flat complex buffer with N/2 values per signal
    final_spectrum : np.ndarray
        Flat complex buffer receiving N/2 + 1 values per signal. May be the
        same buffer as half_spectrum.
    rows : int
        Secondary dimension (1 for plain batched 1-D transforms)
    input_stride, output_stride : int, optional
        Step between rows; default is the per-transform length
    input_distance, output_distance : int, optional
        Step between batch items; default is rows * stride

    Returns
    -------
    np.ndarray
        final_spectrum
    """
    n = check_transform_size(n)
    batch = check_count(batch, "batch")
    rows = check_count(rows, "rows")

    in_layout = input_layout(n, rows, input_stride, input_distance)
    out_layout = output_layout(n, rows, output_stride, output_distance)
    check_buffer(half_spectrum, "half_spectrum", in_layout, rows, batch)
    check_buffer(final_spectrum, "final_spectrum", out_layout, rows, batch)
    check_output_layout(out_layout, rows, batch)
    if half_spectrum.dtype != final_spectrum.dtype:
        raise PreconditionError(
            f"Precision mismatch: half_spectrum is {half_spectrum.dtype}, "
            f"final_spectrum is {final_spectrum.dtype}"
        )

    # bin r reads Z[r] and Z[M-r]; writing X[r] in place would clobber a later read
    if buffers_overlap(half_spectrum, final_spectrum):
        half_spectrum = half_spectrum.copy()

    start = time.perf_counter()
    _post_process_batch(
        n, batch, rows,
        half_spectrum, in_layout.stride, in_layout.distance,
        final_spectrum, out_layout.stride, out_layout.distance,
    )
    logger.debug(
        f"Sequential post-process N={n}, batch={batch}, rows={rows}: "
        f"{(time.perf_counter() - start) * 1000:.3f} ms"
    )
    return final_spectrum
