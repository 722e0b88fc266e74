"""
High-level real-to-complex transform built from the half-length FFT and
one of the post-process implementations.
"""

from typing import Optional

import numpy as np

from .errors import LaunchConfigError, PreconditionError
from .layout import check_count, check_transform_size
from .parallel import DEFAULT_BLOCK_SIZE, KERNELS, configure_threads, post_process_parallel
from .reference import as_signal_batch, half_length_transform, pack_half_spectrum
from .sequential import post_process_sequential
from .twiddle import TwiddleCache


BACKENDS = ('numba', 'torch')
METHODS = ('sequential', 'parallel')


class ParallelPostProcessor:
    """
    Runs the parallel post-process and owns its twiddle table.

    The table is generated on first use, reused while N and the precision
    stay the same, and regenerated when either changes.

    Args:
        backend: 'numba' (CPU work-groups) or 'torch' (tensor device)
        device: torch device for the torch backend ('cpu', 'cuda', ...)
        block_size: Work items per work-group
        kernel: 'twiddle' or 'basic'
        num_threads: numba worker threads (numba backend only)
    """

    def __init__(
        self,
        backend: str = 'numba',
        device: str = 'cpu',
        block_size: int = DEFAULT_BLOCK_SIZE,
        kernel: str = 'twiddle',
        num_threads: Optional[int] = None
    ):
        if backend not in BACKENDS:
            raise PreconditionError(f"Unknown backend: {backend}")
        if kernel not in KERNELS:
            raise PreconditionError(f"Unknown kernel: {kernel}")

        self.backend = backend
        self.block_size = block_size
        self.kernel = kernel
        self.twiddles = TwiddleCache()

        self.device = None
        self._device_table = None
        if backend == 'torch':
            from .torch_backend import resolve_device
            self.device = resolve_device(device)
        elif num_threads is not None:
            configure_threads(num_threads)

    def table(self, n: int, dtype):
        """Twiddle table for N in the given precision, on the backend's device."""
        previous = self.twiddles.generated
        table = self.twiddles.get(n, dtype)
        if self.backend == 'numba':
            return table
        if self._device_table is None or self.twiddles.generated != previous:
            from .torch_backend import to_device
            self._device_table = to_device(table, self.device)
        return self._device_table

    def __call__(
        self,
        n: int,
        batch: int,
        input,
        output,
        rows: int = 1,
        input_stride: Optional[int] = None,
        output_stride: Optional[int] = None,
        input_distance: Optional[int] = None,
        output_distance: Optional[int] = None,
        stream=None
    ):
        """Post-process ``input`` into ``output`` (may be the same buffer)."""
        n = check_transform_size(n)
        twiddles = self.table(n, _numpy_dtype(input)) if self.kernel == 'twiddle' else None

        if self.backend == 'numba':
            if stream is not None:
                raise LaunchConfigError("Streams are only supported by the torch backend")
            return post_process_parallel(
                n, batch, rows, input_stride, output_stride,
                input, input_distance, output, output_distance,
                twiddles, block_size=self.block_size, kernel=self.kernel,
            )

        from .torch_backend import post_process_parallel_torch
        return post_process_parallel_torch(
            n, batch, rows, input_stride, output_stride,
            input, input_distance, output, output_distance,
            twiddles, stream=stream, block_size=self.block_size, kernel=self.kernel,
        )

    def run_host(self, n: int, batch: int, input: np.ndarray, output: np.ndarray, **layout) -> np.ndarray:
        """
        Post-process numpy buffers, moving them to the device and back for the torch backend.

        Returns the numpy array holding the result (``output``, or a host copy
        of the device output).
        """
        if self.backend == 'numba':
            return self(n, batch, input, output, **layout)

        from .torch_backend import to_device
        input_t = to_device(input, self.device)
        output_t = input_t if output is input else to_device(output, self.device)
        self(n, batch, input_t, output_t, **layout)
        return output_t.cpu().numpy()


def _numpy_dtype(buffer) -> np.dtype:
    if isinstance(buffer, np.ndarray):
        return buffer.dtype
    # torch tensor
    return np.dtype(str(buffer.dtype).replace('torch.', ''))


def real_fft(
    signals: np.ndarray,
    n: Optional[int] = None,
    method: str = 'parallel',
    in_place: bool = False,
    processor: Optional[ParallelPostProcessor] = None,
    workers: Optional[int] = None
) -> np.ndarray:
    """
    Real-to-complex FFT via a half-length complex FFT plus post-process.

    Parameters
    ----------
    signals : np.ndarray
        (batch, N) real array, or a flat array of batch * n samples
    n : int, optional
        Signal length for flat input
    method : str
        'sequential' or 'parallel'
    in_place : bool
        Post-process inside a padded buffer instead of a separate output
    processor : ParallelPostProcessor, optional
        Processor to reuse (and its twiddle table); a numba one is created if None
    workers : int, optional
        Worker count for the half-length FFT

    Returns
    -------
    np.ndarray
        Spectrum of shape (batch, N/2 + 1)

    Examples
    --------
    >>> import numpy as np
    >>> x = np.random.randn(3, 14)
    >>> X = real_fft(x)
    >>> # Should match scipy.fft.rfft(x, axis=-1)
    """
    if method not in METHODS:
        raise PreconditionError(f"Unknown method: {method}")

    x = as_signal_batch(signals, n)
    batch, n = x.shape
    n = check_transform_size(n)
    batch = check_count(batch, "batch")
    half_spectrum = half_length_transform(x, workers=workers)
    out_len = n // 2 + 1

    if in_place:
        buffer, distance = pack_half_spectrum(half_spectrum, n, batch)
        source, target = buffer, buffer
        input_distance = output_distance = distance
    else:
        source = half_spectrum
        target = np.empty(batch * out_len, dtype=half_spectrum.dtype)
        input_distance, output_distance = n // 2, out_len

    if method == 'sequential':
        post_process_sequential(
            n, batch, source, target,
            input_distance=input_distance, output_distance=output_distance,
        )
    else:
        if processor is None:
            processor = ParallelPostProcessor()
        target = processor.run_host(n, batch, source, target,
                                    input_distance=input_distance, output_distance=output_distance)

    return target[:batch * output_distance].reshape(batch, output_distance)[:, :out_len]
