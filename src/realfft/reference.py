"""
Trusted transforms wrapped around the post-process.

The half-length complex FFT and the full-length reference transform both
come from scipy.fft; the post-process only ever sees their output buffers.
"""

from typing import Optional, Tuple

import numpy as np
from scipy import fft as sp_fft

from .errors import PreconditionError
from .layout import check_count, check_transform_size


def as_signal_batch(signals: np.ndarray, n: Optional[int] = None) -> np.ndarray:
    """
    Bring real input into a contiguous (batch, N) array.

    A 1-D array is either a single signal (n is None) or a flat batch of
    signals of length n laid out back to back.
    """
    x = np.asarray(signals)
    if np.iscomplexobj(x):
        raise PreconditionError("Signals must be real-valued")

    if x.dtype not in (np.float32, np.float64):
        x = x.astype(np.float64)

    if x.ndim == 1:
        if n is None:
            n = x.shape[0]
        n = check_transform_size(n)
        if x.shape[0] % n != 0:
            raise PreconditionError(f"Flat input of length {x.shape[0]} is not a whole number of length-{n} signals")
        x = x.reshape(-1, n)
    elif x.ndim == 2:
        check_transform_size(x.shape[1])
        if n is not None and n != x.shape[1]:
            raise PreconditionError(f"Signal length {x.shape[1]} does not match n={n}")
    else:
        raise PreconditionError(f"Signals must be 1-D or 2-D, got shape {x.shape}")

    check_count(x.shape[0], "batch")
    return np.ascontiguousarray(x)


def half_length_transform(signals: np.ndarray, n: Optional[int] = None,
                          workers: Optional[int] = None) -> np.ndarray:
    """
    Length-N/2 complex FFT of every real signal viewed as N/2 complex samples.

    Returns
    -------
    np.ndarray
        Flat half spectrum, batch * N/2 complex values in the input precision
    """
    x = as_signal_batch(signals, n)
    batch, length = x.shape
    ctype = np.complex64 if x.dtype == np.float32 else np.complex128

    # (re, im) pairs of consecutive samples become one complex sample
    z = x.view(ctype).reshape(batch, length // 2)
    spectrum = sp_fft.fft(z, axis=-1, workers=workers)
    return np.ascontiguousarray(spectrum, dtype=ctype).reshape(-1)


def reference_rfft(signals: np.ndarray, n: Optional[int] = None,
                   workers: Optional[int] = None) -> np.ndarray:
    """
    Full-length real-to-complex transform used as the correctness oracle.

    Returns
    -------
    np.ndarray
        Flat final spectrum, batch * (N/2 + 1) complex values
    """
    x = as_signal_batch(signals, n)
    return np.ascontiguousarray(sp_fft.rfft(x, axis=-1, workers=workers)).reshape(-1)


def pack_half_spectrum(half_spectrum: np.ndarray, n: int, batch: int,
                       distance: Optional[int] = None) -> Tuple[np.ndarray, int]:
    """
    Copy a packed half spectrum into a buffer large enough for in-place output.

    Each batch item is placed ``distance`` elements apart (default N/2 + 1,
    the padded layout in which input and output runs start at the same
    offset). The buffer always holds batch * (N/2 + 1) values or more, so the
    final spectrum fits with output distance N/2 + 1 whatever the input
    distance.

    Returns
    -------
    (buffer, distance)
    """
    n = check_transform_size(n)
    batch = check_count(batch, "batch")
    half = n // 2
    if distance is None:
        distance = half + 1
    if distance < half:
        raise PreconditionError(f"Distance {distance} is smaller than the half spectrum length {half}")
    if half_spectrum.shape[0] < batch * half:
        raise PreconditionError(
            f"Half spectrum holds {half_spectrum.shape[0]} values, expected {batch * half}"
        )

    buffer = np.zeros(batch * max(distance, half + 1), dtype=half_spectrum.dtype)
    rows = buffer[:batch * distance].reshape(batch, distance)
    rows[:, :half] = half_spectrum[:batch * half].reshape(batch, half)
    return buffer, distance
