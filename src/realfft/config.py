"""
Configuration for the verification driver.
"""

from dataclasses import asdict, dataclass, fields, replace
from typing import Dict, Optional

import yaml

from .errors import PreconditionError
from .layout import PRECISIONS, check_count, check_transform_size
from .parallel import DEFAULT_BLOCK_SIZE, KERNELS
from .transform import BACKENDS

SIGNALS = ('scenario', 'random')


def _check_int(value, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise PreconditionError(f"{name} must be an integer, got {value!r}")


@dataclass
class VerifyConfig:
    """Settings of one verification run."""
    n: int = 14
    batch: int = 3
    precision: str = 'single'
    signal: str = 'scenario'
    seed: Optional[int] = None
    backend: str = 'numba'
    device: str = 'cpu'
    kernel: str = 'twiddle'
    block_size: int = DEFAULT_BLOCK_SIZE
    in_place: bool = True
    num_threads: Optional[int] = None
    rtol: float = 1e-5
    print_limit: int = 16
    log_file: Optional[str] = None

    def validate(self) -> 'VerifyConfig':
        check_transform_size(self.n)
        check_count(self.batch, "batch")
        for name in ('precision', 'signal', 'backend', 'device', 'kernel'):
            if not isinstance(getattr(self, name), str):
                raise PreconditionError(f"{name} must be a string, got {getattr(self, name)!r}")
        if self.precision not in PRECISIONS:
            raise PreconditionError(f"Unknown precision: {self.precision}")
        if self.signal not in SIGNALS:
            raise PreconditionError(f"Unknown signal: {self.signal}")
        if self.backend not in BACKENDS:
            raise PreconditionError(f"Unknown backend: {self.backend}")
        if self.kernel not in KERNELS:
            raise PreconditionError(f"Unknown kernel: {self.kernel}")
        if isinstance(self.rtol, bool) or not isinstance(self.rtol, (int, float)):
            raise PreconditionError(f"rtol must be a number, got {self.rtol!r}")
        self.rtol = float(self.rtol)
        if self.rtol <= 0:
            raise PreconditionError(f"rtol must be > 0, got {self.rtol}")
        _check_int(self.print_limit, "print_limit")
        if self.print_limit < 0:
            raise PreconditionError(f"print_limit must be >= 0, got {self.print_limit}")
        _check_int(self.block_size, "block_size")
        if self.num_threads is not None:
            _check_int(self.num_threads, "num_threads")
        if self.seed is not None:
            _check_int(self.seed, "seed")
        if not isinstance(self.in_place, bool):
            raise PreconditionError(f"in_place must be true or false, got {self.in_place!r}")
        return self

    def to_dict(self) -> Dict:
        return asdict(self)

    def override(self, **kwargs) -> 'VerifyConfig':
        """Copy with every non-None keyword applied."""
        changes = {k: v for k, v in kwargs.items() if v is not None}
        return replace(self, **changes)


def config_from_dict(data: Optional[Dict]) -> VerifyConfig:
    """Build a config from a mapping, rejecting unknown keys."""
    data = data or {}
    if not isinstance(data, dict):
        raise PreconditionError(f"Configuration must be a mapping, got {type(data).__name__}")
    known = {f.name for f in fields(VerifyConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise PreconditionError(f"Unknown configuration keys: {', '.join(unknown)}")
    return VerifyConfig(**data).validate()


def load_config(config_path: str) -> VerifyConfig:
    """Load configuration."""
    with open(config_path, 'r') as f:
        return config_from_dict(yaml.safe_load(f))
