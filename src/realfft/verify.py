"""
Verification driver: runs the reference transform, the sequential
post-process and the parallel post-process on the same input and compares
their spectra and sums.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np
from rich import box
from rich.console import Console
from rich.table import Table

from .config import VerifyConfig
from .layout import complex_dtype, real_dtype
from .parallel import LaunchConfig, plan_launch
from .reference import half_length_transform, pack_half_spectrum, reference_rfft
from .sequential import post_process_sequential
from .transform import ParallelPostProcessor

logger = logging.getLogger(__name__)

PATHS = ('reference', 'sequential', 'parallel')


def scenario_signals(n: int, batch: int, dtype=np.float32) -> np.ndarray:
    """Deterministic test input x[i] = (i + 1) * 5 - (i mod 7), flat batch * n samples."""
    i = np.arange(n * batch)
    return ((i + 1) * 5 - (i % 7)).astype(dtype)


def random_signals(n: int, batch: int, dtype=np.float32, seed: Optional[int] = None) -> np.ndarray:
    """Standard normal test input, flat batch * n samples."""
    rng = np.random.default_rng(seed)
    return rng.standard_normal(n * batch).astype(dtype)


@dataclass
class PathResult:
    """Output of one transform path and its distance to the reference."""
    name: str
    spectrum: np.ndarray
    total: complex
    max_abs_error: float = 0.0
    rel_error: float = 0.0
    sum_error: float = 0.0

    def to_dict(self) -> Dict:
        return {
            'name': self.name,
            'total': [self.total.real, self.total.imag],
            'max_abs_error': self.max_abs_error,
            'rel_error': self.rel_error,
            'sum_error': self.sum_error,
        }


@dataclass
class VerificationReport:
    config: VerifyConfig
    inputs: np.ndarray
    launch: LaunchConfig
    results: Dict[str, PathResult] = field(default_factory=dict)

    @property
    def edge_bins_real(self) -> bool:
        """DC and Nyquist imaginary parts are exactly zero on the post-processed paths."""
        n, batch = self.config.n, self.config.batch
        out_len = n // 2 + 1
        for name in ('sequential', 'parallel'):
            spectrum = self.results[name].spectrum.reshape(batch, out_len)
            if np.any(spectrum[:, 0].imag != 0) or np.any(spectrum[:, -1].imag != 0):
                return False
        return True

    @property
    def passed(self) -> bool:
        rtol = self.config.rtol
        within = all(
            r.rel_error <= rtol and r.sum_error <= rtol
            for r in self.results.values()
        )
        return within and self.edge_bins_real


def _compare(result: PathResult, reference: np.ndarray) -> PathResult:
    ref = reference.astype(np.complex128)
    diff = np.abs(result.spectrum.astype(np.complex128) - ref)
    scale = max(float(np.abs(ref).max()), np.finfo(np.float64).tiny)
    sum_scale = max(float(np.abs(ref).sum()), np.finfo(np.float64).tiny)

    result.max_abs_error = float(diff.max())
    result.rel_error = result.max_abs_error / scale
    result.sum_error = abs(result.total - complex(ref.sum())) / sum_scale
    return result


def _path(name: str, spectrum: np.ndarray) -> PathResult:
    return PathResult(name=name, spectrum=spectrum, total=complex(spectrum.astype(np.complex128).sum()))


def run_verification(config: VerifyConfig,
                     processor: Optional[ParallelPostProcessor] = None) -> VerificationReport:
    """
    Run all three paths for the configured input.

    Returns
    -------
    VerificationReport
        Spectra, sums and errors relative to the reference path
    """
    config.validate()
    n, batch = config.n, config.batch
    rtype = real_dtype(config.precision)
    ctype = complex_dtype(config.precision)
    out_len = n // 2 + 1

    if config.signal == 'scenario':
        inputs = scenario_signals(n, batch, rtype)
    else:
        inputs = random_signals(n, batch, rtype, config.seed)

    if processor is None:
        processor = ParallelPostProcessor(
            backend=config.backend,
            device=config.device,
            block_size=config.block_size,
            kernel=config.kernel,
            num_threads=config.num_threads,
        )

    launch = plan_launch(n, batch, 1, config.block_size)
    report = VerificationReport(config=config, inputs=inputs, launch=launch)
    logger.info(f"Verifying N={n}, batch={batch}, precision={config.precision}, "
                f"backend={config.backend}, kernel={config.kernel}, in_place={config.in_place}")

    reference = reference_rfft(inputs, n).astype(ctype)
    report.results['reference'] = _path('reference', reference)

    half_spectrum = half_length_transform(inputs, n)

    sequential = np.empty(batch * out_len, dtype=ctype)
    post_process_sequential(n, batch, half_spectrum, sequential)
    report.results['sequential'] = _path('sequential', sequential)

    if config.in_place:
        source, distance = pack_half_spectrum(half_spectrum, n, batch)
        target = source
    else:
        source, distance = half_spectrum, n // 2
        target = np.empty(batch * out_len, dtype=ctype)
    output_distance = distance if config.in_place else out_len

    target = processor.run_host(n, batch, source, target,
                                input_distance=distance, output_distance=output_distance)

    parallel = target[:batch * output_distance].reshape(batch, output_distance)[:, :out_len].reshape(-1)
    report.results['parallel'] = _path('parallel', np.ascontiguousarray(parallel))

    for name in PATHS:
        _compare(report.results[name], reference)
        logger.info(f"{name}: sum={report.results[name].total}, "
                    f"rel_error={report.results[name].rel_error:.2e}")

    if not report.passed:
        logger.warning(f"Verification failed for N={n}, batch={batch} (rtol={config.rtol})")
    return report


def _format_values(values: np.ndarray, limit: int) -> str:
    return ", ".join(f"({v.real:.6e}, {v.imag:.6e})" for v in values[:limit])


def display_report(report: VerificationReport, console: Optional[Console] = None) -> None:
    """Print sample values, sums and errors of every path."""
    console = console or Console()
    limit = min(report.config.n, report.config.print_limit)

    console.print("[bold]real input:[/bold]")
    console.print(", ".join(f"{v:.6e}" for v in report.inputs[:limit]))

    for name in PATHS:
        result = report.results[name]
        console.print(f"\n[bold]{name}[/bold] complex output:")
        console.print(_format_values(result.spectrum, report.config.print_limit))
        console.print(f"sum: ({result.total.real:.6e}, {result.total.imag:.6e})")

    launch = report.launch
    console.print(f"\nlaunch: grid {launch.grid}, block {launch.block}, "
                  f"idle work items per transform: {launch.idle_items}")

    table = Table(title="Real-to-complex verification", box=box.ROUNDED)
    table.add_column("Path", style="bold")
    table.add_column("Sum", justify="right")
    table.add_column("Max abs error", justify="right")
    table.add_column("Rel error", justify="right")
    table.add_column("Sum error", justify="right")
    for name in PATHS:
        r = report.results[name]
        table.add_row(
            name,
            f"({r.total.real:.6e}, {r.total.imag:.6e})",
            f"{r.max_abs_error:.2e}",
            f"{r.rel_error:.2e}",
            f"{r.sum_error:.2e}",
        )
    console.print(table)

    if report.passed:
        console.print("[green]✓[/green] All paths agree within "
                      f"rtol={report.config.rtol:g}")
    else:
        console.print("[red]✗[/red] Paths disagree beyond "
                      f"rtol={report.config.rtol:g}")
