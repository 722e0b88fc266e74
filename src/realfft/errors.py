"""
Exception types raised by the real-to-complex post-process.
"""


class RealFFTError(Exception):
    """Base class for every error raised by realfft."""


class PreconditionError(RealFFTError, ValueError):
    """Invalid size, dtype, buffer or layout passed by the caller."""


class LaunchConfigError(RealFFTError):
    """Requested launch shape cannot be executed (grid extent, block size, streams)."""


class DeviceError(RealFFTError, RuntimeError):
    """The execution device is unavailable or failed while running the kernel."""
