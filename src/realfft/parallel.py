"""
Data-parallel real-to-complex post-process.

The work is laid out like a GPU launch: a 3-D grid of work-groups
(blocks.x along the spectrum, rows, batch) of ``block_size`` work items
each. Work item p of a transform owns the conjugate-symmetric pair
(p, q = N/2 - p) for p = 0 .. N/4 and writes both outputs, so no two work
items ever touch the same element. Items with p > N/4 fill out the last
block and do nothing.

Work-groups run concurrently on numba's thread pool (``prange``). For
in-place execution each work-group first reads every pair it owns and only
then writes, which is the barrier the device kernel needs between its read
and its writes.
"""

import cmath
import logging
import math
import time
from dataclasses import dataclass
from typing import Optional, Tuple

import numba
import numpy as np
from numba import jit, prange

from .errors import LaunchConfigError, PreconditionError
from .layout import (
    buffers_overlap,
    check_buffer,
    check_count,
    check_output_layout,
    check_transform_size,
    input_layout,
    is_same_buffer,
    output_layout,
)

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 512
MAX_BLOCK_SIZE = 1024
MAX_GRID_EXTENT = 65535

KERNELS = ('twiddle', 'basic')


@dataclass(frozen=True)
class LaunchConfig:
    """Grid and work-group shape of one post-process launch."""
    grid: Tuple[int, int, int]
    block: Tuple[int, int, int]
    pairs: int

    @property
    def work_items(self) -> int:
        """Work items along the spectrum axis of one transform."""
        return self.grid[0] * self.block[0]

    @property
    def idle_items(self) -> int:
        """Work items per transform past N/4 that only exist to fill the last block."""
        return self.work_items - self.pairs

    @property
    def work_groups(self) -> int:
        return self.grid[0] * self.grid[1] * self.grid[2]


def plan_launch(n: int, batch: int, rows: int = 1,
                block_size: int = DEFAULT_BLOCK_SIZE) -> LaunchConfig:
    """
    Compute the launch shape for a transform.

    Work items cover p = 0 .. N/4 (N/4 + 1 pairs, the last one being the
    self-paired bin N/4 when N is divisible by 4), rounded up to whole blocks.

    Raises:
        LaunchConfigError: if block_size is outside [1, 1024] or batch/rows
            exceed the 65535 grid extent
    """
    n = check_transform_size(n)
    batch = check_count(batch, "batch")
    rows = check_count(rows, "rows")

    if not 1 <= block_size <= MAX_BLOCK_SIZE:
        raise LaunchConfigError(f"block_size must be in [1, {MAX_BLOCK_SIZE}], got {block_size}")
    if rows > MAX_GRID_EXTENT or batch > MAX_GRID_EXTENT:
        raise LaunchConfigError(
            f"Grid extent exceeded: rows={rows}, batch={batch} (limit {MAX_GRID_EXTENT} per axis)"
        )

    pairs = n // 4 + 1
    blocks = (pairs - 1) // block_size + 1
    return LaunchConfig(grid=(blocks, rows, batch), block=(block_size, 1, 1), pairs=pairs)


def configure_threads(num_threads: Optional[int]) -> int:
    """Set the number of worker threads used by the parallel kernel."""
    if num_threads is not None:
        if not 1 <= num_threads <= numba.config.NUMBA_NUM_THREADS:
            raise LaunchConfigError(
                f"num_threads must be in [1, {numba.config.NUMBA_NUM_THREADS}], got {num_threads}"
            )
        numba.set_num_threads(num_threads)
    return numba.get_num_threads()


@jit(nopython=True, cache=True)
def _twiddle_pair(p, q, twd_p, twd_q):
    """Outputs for (p, q) from the twiddle table entries T[p], T[q]."""
    ur = (p.real + q.real) * 0.5
    ui = (p.imag - q.imag) * 0.5
    vr = (p.imag + q.imag) * 0.5
    vi = (p.real - q.real) * 0.5

    out_p = complex(ur + vr * twd_p.real + vi * twd_p.imag,
                    ui - vi * twd_p.real + vr * twd_p.imag)
    out_q = complex(ur + vr * twd_q.real - vi * twd_q.imag,
                    -ui + vi * twd_q.real + vr * twd_q.imag)
    return out_p, out_q


@jit(nopython=True, cache=True)
def _basic_pair(p, q, idx_p, idx_q, n):
    """Outputs for (p, q) recomputing the twiddles from their angles."""
    conj_p = p.conjugate()
    conj_q = q.conjugate()

    omega = cmath.exp(complex(0.0, -2.0 * math.pi * idx_p / n))
    out_p = (p + conj_q) * 0.5 - (p - conj_q) * omega * 0.5j

    omega = cmath.exp(complex(0.0, -2.0 * math.pi * idx_q / n))
    out_q = (q + conj_p) * 0.5 - (q - conj_p) * omega * 0.5j
    return out_p, out_q


@jit(nopython=True, cache=True)
def _write_pair(n, idx_p, p, q, out, out_base, twiddles, use_table):
    half = n >> 1
    idx_q = half - idx_p

    if idx_p == 0:
        # DC and Nyquist
        out[out_base] = complex(p.real + p.imag, 0.0)
        out[out_base + half] = complex(p.real - p.imag, 0.0)
    elif use_table:
        out_p, out_q = _twiddle_pair(p, q, twiddles[idx_p], twiddles[idx_q])
        out[out_base + idx_p] = out_p
        out[out_base + idx_q] = out_q
    else:
        out_p, out_q = _basic_pair(p, q, idx_p, idx_q, n)
        out[out_base + idx_p] = out_p
        out[out_base + idx_q] = out_q


@jit(nopython=True, cache=True, parallel=True)
def _post_process_grid(n, grid_x, grid_y, grid_z, block_size,
                       input_stride, output_stride,
                       inp, input_distance, out, output_distance,
                       twiddles, use_table, in_place):
    half = n >> 1
    quarter = n >> 2
    n_groups = grid_x * grid_y * grid_z

    for group in prange(n_groups):
        block_x = group % grid_x
        block_y = (group // grid_x) % grid_y
        block_z = group // (grid_x * grid_y)

        in_base = block_z * input_distance + block_y * input_stride
        out_base = block_z * output_distance + block_y * output_stride

        first = block_x * block_size
        # items with p > N/4 are idle
        active = min(block_size, quarter + 1 - first)

        if in_place:
            p_vals = np.empty(block_size, dtype=inp.dtype)
            q_vals = np.empty(block_size, dtype=inp.dtype)
            for t in range(active):
                idx_p = first + t
                p_vals[t] = inp[in_base + idx_p]
                if idx_p > 0:
                    q_vals[t] = inp[in_base + half - idx_p]
                else:
                    q_vals[t] = p_vals[t]
            # barrier: the whole work-group has read before anyone writes
            for t in range(active):
                _write_pair(n, first + t, p_vals[t], q_vals[t],
                            out, out_base, twiddles, use_table)
        else:
            for t in range(active):
                idx_p = first + t
                p = inp[in_base + idx_p]
                if idx_p > 0:
                    q = inp[in_base + half - idx_p]
                else:
                    q = p
                _write_pair(n, idx_p, p, q, out, out_base, twiddles, use_table)


def post_process_parallel(
    n: int,
    batch: int,
    rows: int,
    input_stride: Optional[int],
    output_stride: Optional[int],
    input: np.ndarray,
    input_distance: Optional[int],
    output: np.ndarray,
    output_distance: Optional[int],
    twiddles: Optional[np.ndarray],
    block_size: int = DEFAULT_BLOCK_SIZE,
    kernel: str = 'twiddle'
) -> np.ndarray:
    """
    Parallel post-process of a batch of half spectra.

    Parameters
    ----------
    n : int
        Real signal length N (even, >= 4)
    batch, rows : int
        Grid extents along the batch and secondary axes (each <= 65535)
    input_stride, output_stride : int or None
        Step between rows; None selects the packed default
    input : np.ndarray
        Flat complex buffer with N/2 values per transform
    input_distance, output_distance : int or None
        Step between batch items; None selects the packed default
    output : np.ndarray
        Flat complex buffer with N/2 + 1 values per transform. Passing the
        input buffer again runs the transform in place.
    twiddles : np.ndarray or None
        Table from generate_twiddles(n) in the buffer precision. Only the
        'basic' kernel accepts None.
    block_size : int
        Work items per work-group
    kernel : str
        'twiddle' (table lookup) or 'basic' (recompute exp per element)

    Returns
    -------
    np.ndarray
        output
    """
    launch = plan_launch(n, batch, rows, block_size)
    if kernel not in KERNELS:
        raise PreconditionError(f"Unknown kernel: {kernel}")

    in_layout = input_layout(n, rows, input_stride, input_distance)
    out_layout = output_layout(n, rows, output_stride, output_distance)
    check_buffer(input, "input", in_layout, rows, batch)
    check_buffer(output, "output", out_layout, rows, batch)
    check_output_layout(out_layout, rows, batch)
    if input.dtype != output.dtype:
        raise PreconditionError(f"Precision mismatch: input is {input.dtype}, output is {output.dtype}")

    use_table = kernel == 'twiddle'
    if use_table:
        if twiddles is None:
            raise PreconditionError("The twiddle kernel needs a twiddle table")
        if twiddles.shape != (n,) or twiddles.dtype != input.dtype:
            raise PreconditionError(
                f"Twiddle table must have shape ({n},) and dtype {input.dtype}, "
                f"got shape {twiddles.shape} and dtype {twiddles.dtype}"
            )
    else:
        twiddles = np.empty(1, dtype=input.dtype)

    in_place = (
        is_same_buffer(input, output)
        and in_layout.stride == out_layout.stride
        and in_layout.distance == out_layout.distance
    )
    if not in_place and buffers_overlap(input, output):
        # runs of different transforms overlap across input and output
        logger.debug("Input and output alias with different layouts; staging input copy")
        input = input.copy()

    start = time.perf_counter()
    _post_process_grid(
        n, launch.grid[0], launch.grid[1], launch.grid[2], launch.block[0],
        in_layout.stride, out_layout.stride,
        input, in_layout.distance, output, out_layout.distance,
        twiddles, use_table, in_place,
    )
    logger.debug(
        f"Parallel post-process ({kernel}, {'in-place' if in_place else 'out-of-place'}) "
        f"grid {launch.grid}, block {launch.block}: "
        f"{(time.perf_counter() - start) * 1000:.3f} ms"
    )
    return output
