"""
Data layout helpers shared by the sequential and parallel post-process.

A batched transform buffer is a flat 1-D array. Transform ``(row, batch)``
starts at ``batch * distance + row * stride`` and its elements are
contiguous from there on. The input holds ``N/2`` complex values per
transform (the half spectrum), the output ``N/2 + 1`` (the final spectrum).
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .errors import PreconditionError


# precision name -> (real dtype, complex dtype)
PRECISIONS = {
    'single': (np.float32, np.complex64),
    'double': (np.float64, np.complex128),
}


def real_dtype(precision: str) -> np.dtype:
    """Real dtype for a precision name ('single' or 'double')."""
    if precision not in PRECISIONS:
        raise PreconditionError(f"Unknown precision: {precision}")
    return np.dtype(PRECISIONS[precision][0])


def complex_dtype(precision: str) -> np.dtype:
    """Complex dtype for a precision name ('single' or 'double')."""
    if precision not in PRECISIONS:
        raise PreconditionError(f"Unknown precision: {precision}")
    return np.dtype(PRECISIONS[precision][1])


def check_transform_size(n: int) -> int:
    """Reject sizes the post-process cannot handle (odd N or N < 4)."""
    if isinstance(n, (bool, np.bool_)) or not isinstance(n, (int, np.integer)):
        raise PreconditionError(f"Transform size must be an integer, got {n!r}")
    n = int(n)
    if n < 4:
        raise PreconditionError(f"Transform size must be >= 4, got {n}")
    if n % 2 != 0:
        raise PreconditionError(f"Transform size must be even, got {n}")
    return n


def check_count(value: int, name: str) -> int:
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, (int, np.integer)):
        raise PreconditionError(f"{name} must be an integer, got {value!r}")
    if value < 1:
        raise PreconditionError(f"{name} must be >= 1, got {value}")
    return int(value)


@dataclass(frozen=True)
class BufferLayout:
    """
    (stride, distance) descriptor of one side of a batched transform.

    Attributes:
        length: Number of complex elements in one transform
        stride: Step between consecutive rows of the secondary dimension
        distance: Step between consecutive batch items
    """
    length: int
    stride: int
    distance: int

    @classmethod
    def create(
        cls,
        length: int,
        rows: int = 1,
        stride: Optional[int] = None,
        distance: Optional[int] = None
    ) -> 'BufferLayout':
        """Fill in the packed defaults for missing stride/distance."""
        if stride is None:
            stride = length
        if distance is None:
            distance = rows * stride
        if stride < 0 or distance < 0:
            raise PreconditionError(
                f"stride and distance must be non-negative, got stride={stride}, distance={distance}"
            )
        return cls(int(length), int(stride), int(distance))

    def offset(self, row: int, batch: int) -> int:
        """First element of transform (row, batch)."""
        return batch * self.distance + row * self.stride

    def span(self, rows: int, batch: int) -> int:
        """Minimum buffer length holding every transform of the grid."""
        return self.offset(rows - 1, batch - 1) + self.length

    def is_disjoint(self, rows: int, batch: int) -> bool:
        """
        True when distinct (row, batch) transforms never share an element.

        Accepts either nesting order: rows inside batch items
        (stride >= length, distance >= rows * stride) or batch items
        inside rows (distance >= length, stride >= batch * distance).
        """
        if rows == 1 and batch == 1:
            return True
        if rows == 1:
            return self.distance >= self.length
        if batch == 1:
            return self.stride >= self.length
        rows_inner = self.stride >= self.length and self.distance >= rows * self.stride
        batch_inner = self.distance >= self.length and self.stride >= batch * self.distance
        return rows_inner or batch_inner


def input_layout(n: int, rows: int = 1, stride: Optional[int] = None,
                 distance: Optional[int] = None) -> BufferLayout:
    return BufferLayout.create(n // 2, rows, stride, distance)


def output_layout(n: int, rows: int = 1, stride: Optional[int] = None,
                  distance: Optional[int] = None) -> BufferLayout:
    return BufferLayout.create(n // 2 + 1, rows, stride, distance)


def check_buffer(buffer, name: str, layout: BufferLayout, rows: int, batch: int) -> None:
    """
    Validate a numpy buffer against its layout.

    Raises:
        PreconditionError: if the buffer is not a flat complex array long enough
            for every transform of the grid
    """
    if not isinstance(buffer, np.ndarray):
        raise PreconditionError(f"{name} must be a numpy array, got {type(buffer).__name__}")
    if buffer.ndim != 1:
        raise PreconditionError(f"{name} must be 1-D, got shape {buffer.shape}")
    if buffer.dtype not in (np.complex64, np.complex128):
        raise PreconditionError(f"{name} must be complex64 or complex128, got {buffer.dtype}")
    needed = layout.span(rows, batch)
    if buffer.shape[0] < needed:
        raise PreconditionError(
            f"{name} holds {buffer.shape[0]} complex values, layout needs {needed}"
        )


def check_output_layout(layout: BufferLayout, rows: int, batch: int) -> None:
    if not layout.is_disjoint(rows, batch):
        raise PreconditionError(
            f"Output layout (stride={layout.stride}, distance={layout.distance}) makes "
            f"transforms of length {layout.length} overlap for rows={rows}, batch={batch}"
        )


def _data_pointer(buffer: np.ndarray) -> int:
    return buffer.__array_interface__['data'][0]


def is_same_buffer(a: np.ndarray, b: np.ndarray) -> bool:
    """True when a and b are views starting at the same address with the same dtype."""
    return (
        a is b
        or (_data_pointer(a) == _data_pointer(b)
            and a.dtype == b.dtype
            and a.strides == b.strides)
    )


def buffers_overlap(a: np.ndarray, b: np.ndarray) -> bool:
    return a is b or np.may_share_memory(a, b)
