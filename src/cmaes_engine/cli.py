"""
Command-line driver: run CMA-ES on a registered objective.
"""

import argparse
import logging
import time
import numpy as np

from .checkpoint import save_result
from .config import CMAESConfig, load_config
from .objectives import available_objectives
from .optimizer import CMAESOptimizer
from .reporting import configure_logging, console, report_result


def build_parser():
    parser = argparse.ArgumentParser(prog="cmaes_engine", description="run CMA-ES on a benchmark objective")
    parser.add_argument("--objective", default="sphere", choices=available_objectives(), help="objective to minimize")
    parser.add_argument("--dimension", type=int, default=None, help="search dimension (default: len(--x0) or 10)")
    parser.add_argument("--x0", type=float, nargs="+", default=None, help="initial point")
    parser.add_argument("--x0-fill", type=float, default=1.0, dest="x0_fill", help="value for every component when --x0 is not given")
    parser.add_argument("--config", default=None, help="JSON config file")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--sigma0", type=float, default=None)
    parser.add_argument("--max-iter", type=int, default=None, dest="max_iter")
    parser.add_argument("--workers", type=int, default=None, dest="n_workers", help="evaluation processes (1 = sequential)")
    parser.add_argument("--output", default=None, help="pickle the result to this path")
    parser.add_argument("--log-file", default=None, dest="log_path")
    parser.add_argument("--verbose", action="store_true", default=None)
    return parser


def resolve_initial_point(args):
    if args.x0 is not None:
        x0 = np.array(args.x0, dtype=float)
        if args.dimension is not None and args.dimension != len(x0):
            raise ValueError(f"--x0 has {len(x0)} values, --dimension is {args.dimension}")
        return x0
    dimension = args.dimension if args.dimension is not None else 10
    if dimension < 1:
        raise ValueError(f"--dimension must be >= 1, got {dimension}")
    return np.full(dimension, args.x0_fill)


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config) if args.config else CMAESConfig()
        overrides = {
            name: getattr(args, name)
            for name in ("seed", "sigma0", "max_iter", "n_workers", "log_path", "verbose")
            if getattr(args, name) is not None
        }
        config = config.replace(**overrides)
        x0 = resolve_initial_point(args)
    except (OSError, ValueError) as e:
        console.print(f"[red]❌ {e}[/red]")
        return 2

    configure_logging(config.log_path, level=logging.INFO if config.verbose else logging.WARNING)

    start_time = time.time()
    result = CMAESOptimizer(args.objective, x0, config=config).run()
    if not config.verbose:
        report_result(result, time.time() - start_time)

    if args.output:
        save_result(args.output, result)

    return 1 if result.failed else 0

