"""
Parallel post-process on torch tensors.

Same launch contract and pair formula as the numba kernel, executed as
whole-grid tensor operations on a torch device. All pairs of the launch are
gathered before anything is scattered back, so in-place execution needs no
staging copy regardless of the input/output layouts.
"""

import contextlib
import logging
import time
from typing import Optional, Union

import numpy as np
import torch

from .errors import DeviceError, LaunchConfigError, PreconditionError
from .layout import (
    BufferLayout,
    check_output_layout,
    input_layout,
    output_layout,
)
from .parallel import DEFAULT_BLOCK_SIZE, KERNELS, plan_launch

logger = logging.getLogger(__name__)

COMPLEX_DTYPES = {
    np.dtype(np.complex64): torch.complex64,
    np.dtype(np.complex128): torch.complex128,
}


def resolve_device(device: Union[str, torch.device, None]) -> torch.device:
    """Turn a device name into a torch.device, failing if CUDA is requested but missing."""
    if device is None:
        device = 'cuda' if torch.cuda.is_available() else 'cpu'
    device = torch.device(device)
    if device.type == 'cuda' and not torch.cuda.is_available():
        raise DeviceError("CUDA device requested but not available. Use device='cpu'.")
    return device


def to_device(array: np.ndarray, device: Union[str, torch.device, None]) -> torch.Tensor:
    """Copy a complex numpy buffer onto a device."""
    if array.dtype not in COMPLEX_DTYPES:
        raise PreconditionError(f"Expected complex64 or complex128, got {array.dtype}")
    array = np.ascontiguousarray(array)
    if not array.flags.writeable:
        array = array.copy()
    return torch.from_numpy(array).to(resolve_device(device))


def _check_tensor(tensor, name: str, layout: BufferLayout, rows: int, batch: int) -> None:
    if not isinstance(tensor, torch.Tensor):
        raise PreconditionError(f"{name} must be a torch.Tensor, got {type(tensor).__name__}")
    if tensor.dim() != 1:
        raise PreconditionError(f"{name} must be 1-D, got shape {tuple(tensor.shape)}")
    if tensor.dtype not in (torch.complex64, torch.complex128):
        raise PreconditionError(f"{name} must be complex64 or complex128, got {tensor.dtype}")
    needed = layout.span(rows, batch)
    if tensor.shape[0] < needed:
        raise PreconditionError(f"{name} holds {tensor.shape[0]} complex values, layout needs {needed}")


def _stream_context(stream, device: torch.device):
    if stream is None:
        return contextlib.nullcontext()
    if device.type != 'cuda':
        raise LaunchConfigError(f"Streams are only supported on CUDA devices, got device {device}")
    return torch.cuda.stream(stream)


def post_process_parallel_torch(
    n: int,
    batch: int,
    rows: int,
    input_stride: Optional[int],
    output_stride: Optional[int],
    input: torch.Tensor,
    input_distance: Optional[int],
    output: torch.Tensor,
    output_distance: Optional[int],
    twiddles: Optional[torch.Tensor],
    stream=None,
    block_size: int = DEFAULT_BLOCK_SIZE,
    kernel: str = 'twiddle'
) -> torch.Tensor:
    """
    Parallel post-process of half spectra held in device tensors.

    Arguments follow post_process_parallel; ``stream`` is an optional
    torch.cuda.Stream the kernel is enqueued on.
    """
    launch = plan_launch(n, batch, rows, block_size)
    if kernel not in KERNELS:
        raise PreconditionError(f"Unknown kernel: {kernel}")

    in_layout = input_layout(n, rows, input_stride, input_distance)
    out_layout = output_layout(n, rows, output_stride, output_distance)
    _check_tensor(input, "input", in_layout, rows, batch)
    _check_tensor(output, "output", out_layout, rows, batch)
    check_output_layout(out_layout, rows, batch)
    if input.dtype != output.dtype:
        raise PreconditionError(f"Precision mismatch: input is {input.dtype}, output is {output.dtype}")
    if input.device != output.device:
        raise PreconditionError(f"input is on {input.device}, output is on {output.device}")

    device = input.device
    if kernel == 'twiddle':
        if twiddles is None:
            raise PreconditionError("The twiddle kernel needs a twiddle table")
        if tuple(twiddles.shape) != (n,) or twiddles.dtype != input.dtype:
            raise PreconditionError(
                f"Twiddle table must have shape ({n},) and dtype {input.dtype}, "
                f"got shape {tuple(twiddles.shape)} and dtype {twiddles.dtype}"
            )
        twiddles = twiddles.to(device)

    start = time.perf_counter()
    try:
        with _stream_context(stream, device):
            _run_grid(n, launch, in_layout, out_layout, input, output, twiddles, kernel)
        if device.type == 'cuda':
            torch.cuda.synchronize(device)
    except torch.cuda.OutOfMemoryError as exc:
        raise DeviceError(f"Out of memory on {device} while post-processing N={n}, batch={batch}") from exc
    except RuntimeError as exc:
        if device.type != 'cuda':
            raise
        raise DeviceError(f"Kernel execution failed on {device}: {exc}") from exc
    logger.debug(
        f"Torch post-process ({kernel}) on {device} grid {launch.grid}, block {launch.block}: "
        f"{(time.perf_counter() - start) * 1000:.3f} ms"
    )
    return output


def _run_grid(n, launch, in_layout, out_layout, inp, out, twiddles, kernel):
    device = inp.device
    half = n // 2
    quarter = n // 4
    _, rows, batch = launch.grid

    # transform bases in (batch, row) order, shape (B*R, 1)
    b = torch.arange(batch, device=device).repeat_interleave(rows)
    r = torch.arange(rows, device=device).repeat(batch)
    in_base = (b * in_layout.distance + r * in_layout.stride).unsqueeze(1)
    out_base = (b * out_layout.distance + r * out_layout.stride).unsqueeze(1)

    # launch grid along p, guarded to p <= N/4
    p = torch.arange(launch.work_items, device=device)
    p = p[p <= quarter]
    pos = p[1:]
    q = half - pos

    z0 = inp[in_base[:, 0]]
    zp = inp[in_base + pos]
    zq = inp[in_base + q]

    if kernel == 'twiddle':
        ur = (zp.real + zq.real) * 0.5
        ui = (zp.imag - zq.imag) * 0.5
        vr = (zp.imag + zq.imag) * 0.5
        vi = (zp.real - zq.real) * 0.5
        twd_p = twiddles[pos]
        twd_q = twiddles[q]
        out_p = torch.complex(ur + vr * twd_p.real + vi * twd_p.imag,
                              ui - vi * twd_p.real + vr * twd_p.imag)
        out_q = torch.complex(ur + vr * twd_q.real - vi * twd_q.imag,
                              -ui + vi * twd_q.real + vr * twd_q.imag)
    else:
        real_dtype = zp.real.dtype
        omega_p = torch.polar(torch.ones_like(pos, dtype=real_dtype), -2.0 * np.pi * pos.to(real_dtype) / n)
        omega_q = torch.polar(torch.ones_like(q, dtype=real_dtype), -2.0 * np.pi * q.to(real_dtype) / n)
        conj_p = zp.conj()
        conj_q = zq.conj()
        out_p = (zp + conj_q) * 0.5 - (zp - conj_q) * omega_p * 0.5j
        out_q = (zq + conj_p) * 0.5 - (zq - conj_p) * omega_q * 0.5j

    dc = torch.complex(z0.real + z0.imag, torch.zeros_like(z0.real))
    nyquist = torch.complex(z0.real - z0.imag, torch.zeros_like(z0.real))

    # every read above is complete before the first write below
    out[out_base[:, 0]] = dc
    out[out_base[:, 0] + half] = nyquist
    out[(out_base + pos).reshape(-1)] = out_p.reshape(-1).to(out.dtype)
    out[(out_base + q).reshape(-1)] = out_q.reshape(-1).to(out.dtype)
