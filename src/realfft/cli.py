"""
Command-line verification of the real-to-complex post-process.

Usage:
    # Default scenario (N=14, batch=3, in-place, single precision)
    realfft-verify

    # Larger random input on the torch backend
    realfft-verify --n 65536 --batch 8 --signal random --seed 0 --backend torch

    # Settings from a YAML file, overridden on the command line
    realfft-verify --config configs/default.yaml --out-of-place
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel

from .config import VerifyConfig, load_config
from .errors import RealFFTError
from .utils.logging import setup_logging
from .utils.seed import set_seed
from .verify import display_report, run_verification

console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Verify the real-to-complex post-process")
    parser.add_argument('--config', type=str, default=None, help='Path to YAML configuration file')
    parser.add_argument('--n', type=int, default=None, help='Real signal length (even, >= 4)')
    parser.add_argument('--batch', type=int, default=None, help='Number of signals')
    parser.add_argument('--precision', choices=['single', 'double'], default=None)
    parser.add_argument('--signal', choices=['scenario', 'random'], default=None)
    parser.add_argument('--seed', type=int, default=None, help='Seed for random signals')
    parser.add_argument('--backend', choices=['numba', 'torch'], default=None)
    parser.add_argument('--device', type=str, default=None, help="Torch device ('cpu', 'cuda')")
    parser.add_argument('--kernel', choices=['twiddle', 'basic'], default=None)
    parser.add_argument('--block-size', type=int, default=None, help='Work items per work-group')
    parser.add_argument('--num-threads', type=int, default=None, help='Numba worker threads')
    parser.add_argument('--rtol', type=float, default=None, help='Relative tolerance')
    parser.add_argument('--print-limit', type=int, default=None, help='Output values printed per path')
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument('--in-place', dest='in_place', action='store_true', default=None)
    mode.add_argument('--out-of-place', dest='in_place', action='store_false')
    parser.add_argument('--log-file', type=str, default=None, help='Write detailed logs to this file')
    parser.add_argument('--json', type=str, default=None, help='Save the summary as JSON')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log kernel launches at DEBUG level')
    return parser


def resolve_config(args: argparse.Namespace) -> VerifyConfig:
    config = load_config(args.config) if args.config else VerifyConfig()
    return config.override(
        n=args.n,
        batch=args.batch,
        precision=args.precision,
        signal=args.signal,
        seed=args.seed,
        backend=args.backend,
        device=args.device,
        kernel=args.kernel,
        block_size=args.block_size,
        num_threads=args.num_threads,
        rtol=args.rtol,
        print_limit=args.print_limit,
        in_place=args.in_place,
        log_file=args.log_file,
    ).validate()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = resolve_config(args)
    except (RealFFTError, OSError) as exc:
        console.print(f"[red]Invalid configuration:[/red] {exc}")
        return 2

    setup_logging(
        log_file=config.log_file,
        level=logging.DEBUG if args.verbose else logging.INFO,
        name='realfft',
        console_level=logging.DEBUG if args.verbose else logging.WARNING,
    )
    if config.seed is not None:
        set_seed(config.seed)

    console.print(Panel.fit(
        "[bold blue]Real-to-complex post-process verification[/bold blue]\n"
        f"N={config.n}, batch={config.batch}, precision={config.precision}, "
        f"backend={config.backend}, kernel={config.kernel}, "
        f"{'in-place' if config.in_place else 'out-of-place'}",
        border_style="blue"
    ))

    try:
        report = run_verification(config)
    except RealFFTError as exc:
        console.print(f"[red]{type(exc).__name__}:[/red] {exc}")
        return 2

    display_report(report, console)

    if args.json:
        summary = {
            'config': config.to_dict(),
            'launch': {'grid': list(report.launch.grid), 'block': list(report.launch.block)},
            'passed': report.passed,
            'paths': {name: r.to_dict() for name, r in report.results.items()},
        }
        json_path = Path(args.json)
        json_path.parent.mkdir(parents=True, exist_ok=True)
        with open(json_path, 'w') as f:
            json.dump(summary, f, indent=2)
        console.print(f"[green]✓[/green] Summary saved to {json_path}")

    return 0 if report.passed else 1


if __name__ == "__main__":
    sys.exit(main())
