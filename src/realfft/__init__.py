"""
realfft - Real-to-complex FFT through a half-length complex transform

A length-N real signal is transformed by running a length-N/2 complex FFT
on it and then recovering the (N/2 + 1)-point spectrum with a butterfly
post-process. This package provides that post-process in a sequential
reference form and a data-parallel form (numba work-groups or torch
devices), plus the twiddle table, the trusted FFT wrappers used around it
and a verification driver.

Modules:
    - twiddle: Twiddle factor table
    - sequential: Sequential post-process
    - parallel: Launch planning and the parallel post-process kernel
    - torch_backend: Parallel post-process on torch tensors
    - reference: Half-length complex transform and reference oracle
    - transform: ParallelPostProcessor and real_fft
    - verify: Verification driver
"""

from .errors import RealFFTError, PreconditionError, LaunchConfigError, DeviceError
from .layout import BufferLayout, PRECISIONS
from .twiddle import generate_twiddles, TwiddleCache
from .sequential import post_process_sequential
from .parallel import (
    LaunchConfig,
    plan_launch,
    post_process_parallel,
    configure_threads,
    DEFAULT_BLOCK_SIZE,
    MAX_GRID_EXTENT,
)
from .reference import half_length_transform, reference_rfft, pack_half_spectrum
from .transform import ParallelPostProcessor, real_fft

__all__ = [
    # Errors
    'RealFFTError',
    'PreconditionError',
    'LaunchConfigError',
    'DeviceError',
    # Layout
    'BufferLayout',
    'PRECISIONS',
    # Twiddle table
    'generate_twiddles',
    'TwiddleCache',
    # Post-process
    'post_process_sequential',
    'post_process_parallel',
    'LaunchConfig',
    'plan_launch',
    'configure_threads',
    'DEFAULT_BLOCK_SIZE',
    'MAX_GRID_EXTENT',
    'ParallelPostProcessor',
    # Trusted transforms
    'half_length_transform',
    'reference_rfft',
    'pack_half_spectrum',
    'real_fft',
]

__version__ = '1.0.0'
