"""
Unit Tests for the torch Post-Process Backend

Run:
    pytest tests/test_torch_backend.py -v
"""

import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import numpy as np
import pytest
import torch
from scipy.fft import rfft as scipy_rfft

from realfft import (
    DeviceError,
    LaunchConfigError,
    ParallelPostProcessor,
    PreconditionError,
    generate_twiddles,
    half_length_transform,
    pack_half_spectrum,
    post_process_sequential,
    real_fft,
)
from realfft.torch_backend import post_process_parallel_torch, resolve_device, to_device


def max_rel_error(ours, ref) -> float:
    ours = np.asarray(ours, dtype=np.complex128)
    ref = np.asarray(ref, dtype=np.complex128)
    return float(np.abs(ours - ref).max() / np.abs(ref).max())


def run_torch(x: np.ndarray, kernel: str = 'twiddle', block_size: int = 512) -> np.ndarray:
    batch, n = x.shape
    half = to_device(half_length_transform(x), 'cpu')
    out = torch.empty(batch * (n // 2 + 1), dtype=half.dtype)
    twiddles = to_device(generate_twiddles(n, np.complex128 if half.dtype == torch.complex128 else np.complex64), 'cpu')
    post_process_parallel_torch(n, batch, 1, None, None, half, None, out, None, twiddles,
                                block_size=block_size, kernel=kernel)
    return out.numpy().reshape(batch, n // 2 + 1)


class TestTorchBackend:
    """Test suite for the torch backend on CPU tensors."""

    def test_matches_reference(self):
        for n in [4, 6, 14, 64, 1000, 2048]:
            x = np.random.randn(3, n)
            ours = run_torch(x)
            assert max_rel_error(ours, scipy_rfft(x, axis=-1)) < 1e-12, f"Torch failed for N={n}"

        print(f"\n[Torch Backend] All sizes passed ✓")

    def test_matches_sequential_single(self):
        x = np.random.randn(4, 512).astype(np.float32)
        half = half_length_transform(x)
        seq = np.empty(4 * 257, dtype=np.complex64)
        post_process_sequential(512, 4, half, seq)

        ours = run_torch(x)
        assert ours.dtype == np.complex64
        assert max_rel_error(ours, seq.reshape(4, 257)) < 1e-5

    def test_basic_kernel(self):
        x = np.random.randn(2, 30)
        assert max_rel_error(run_torch(x, kernel='basic'), scipy_rfft(x, axis=-1)) < 1e-12

    def test_edge_bins_real(self):
        out = run_torch(np.random.randn(3, 18))
        assert np.all(out[:, 0].imag == 0)
        assert np.all(out[:, -1].imag == 0)

    def test_in_place_unpadded(self):
        """Whole-grid gather before scatter: no staging needed for overlapping runs."""
        n, batch = 14, 3
        x = np.random.randn(batch, n)
        buffer, distance = pack_half_spectrum(half_length_transform(x), n, batch, distance=n // 2)
        tensor = to_device(buffer, 'cpu')
        twiddles = to_device(generate_twiddles(n, np.complex128), 'cpu')
        post_process_parallel_torch(n, batch, 1, None, None, tensor, distance, tensor, n // 2 + 1, twiddles)
        ours = tensor.numpy().reshape(batch, n // 2 + 1)
        assert max_rel_error(ours, scipy_rfft(x, axis=-1)) < 1e-12

    def test_processor(self):
        processor = ParallelPostProcessor(backend='torch', device='cpu')
        x = np.random.randn(3, 64)
        for in_place in [False, True]:
            ours = real_fft(x, in_place=in_place, processor=processor)
            assert max_rel_error(ours, scipy_rfft(x, axis=-1)) < 1e-12
        assert processor.twiddles.generated == 1

    def test_grid_extent_limit(self):
        buf = torch.zeros(16, dtype=torch.complex64)
        with pytest.raises(LaunchConfigError):
            post_process_parallel_torch(16, 65536, 1, None, None, buf, None, buf, None, None)

    def test_stream_needs_cuda(self):
        buf = torch.zeros(16, dtype=torch.complex64)
        twiddles = to_device(generate_twiddles(16), 'cpu')
        with pytest.raises(LaunchConfigError):
            post_process_parallel_torch(16, 1, 1, None, None, buf, None, buf, None, twiddles,
                                        stream=object())

    def test_rejects_numpy_buffers(self):
        buf = np.zeros(16, dtype=np.complex64)
        with pytest.raises(PreconditionError):
            post_process_parallel_torch(16, 1, 1, None, None, buf, None, buf, None, None)

    @pytest.mark.skipif(torch.cuda.is_available(), reason="CUDA is available")
    def test_missing_cuda(self):
        with pytest.raises(DeviceError):
            resolve_device('cuda')
        with pytest.raises(DeviceError):
            ParallelPostProcessor(backend='torch', device='cuda')

    @pytest.mark.skipif(not torch.cuda.is_available(), reason="CUDA not available")
    def test_cuda_stream(self):
        n, batch = 1024, 4
        x = np.random.randn(batch, n).astype(np.float32)
        half = to_device(half_length_transform(x), 'cuda')
        out = torch.empty(batch * (n // 2 + 1), dtype=half.dtype, device='cuda')
        twiddles = to_device(generate_twiddles(n), 'cuda')
        stream = torch.cuda.Stream()
        post_process_parallel_torch(n, batch, 1, None, None, half, None, out, None, twiddles, stream=stream)
        ours = out.cpu().numpy().reshape(batch, n // 2 + 1)
        assert max_rel_error(ours, scipy_rfft(x.astype(np.float64), axis=-1)) < 1e-5
