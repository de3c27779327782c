"""
Logging setup and rich console output for CMA-ES runs.
"""

import os
import logging
import contextlib
import datetime
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule

from .data_structures import TerminationState

console = Console(
    force_terminal=True,
    no_color=False,
    log_path=False,
    width=191,
    color_system="truecolor",
    legacy_windows=False,
)

LOG_FORMAT = '[%(asctime)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def configure_logging(log_path=None, level=logging.INFO):
    """
    Configure root logging with timestamps.

    With ``log_path`` the log is appended to that file, otherwise it goes to
    stderr.
    """
    if log_path:
        log_dir = os.path.dirname(log_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers = [logging.FileHandler(log_path, mode='a')]
    else:
        handlers = [logging.StreamHandler()]

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )


def console_wrapper(msg, watch_path=None):
    """Print a rich renderable, to ``watch_path`` when given."""
    if watch_path is None:
        console.print(msg)
        return
    with open(watch_path, "a") as f, contextlib.redirect_stdout(f), contextlib.redirect_stderr(f):
        console.print(msg)


def log_message(message, watch_path=None, emoji=None, timestamp=True):
    """Print a single timestamped line."""
    timestamp_str = datetime.datetime.now().strftime(DATE_FORMAT) if timestamp else ""
    emoji_str = f" {emoji}" if emoji else ""
    console_wrapper(f"{timestamp_str}{emoji_str} {message}", watch_path)


def report_configuration(config, params, problem_name, watch_path=None):
    console_wrapper(Rule(f"[bold cyan]CMA-ES | {problem_name}[/bold cyan]"), watch_path)
    console_wrapper(
        f"[cyan]📊 n={params.n_dimensions}, λ={params.population_size}, μ={params.mu}, "
        f"μ_eff={params.mueff:.3f}[/cyan]",
        watch_path,
    )
    console_wrapper(
        f"[cyan]σ₀={config.sigma0}, max_iter={config.max_iter}, "
        f"tolerance={config.tolerance}, σ tolerance={config.sigma_tolerance}[/cyan]",
        watch_path,
    )


def report_result(result, elapsed, watch_path=None):
    """Final summary panel, colored by outcome."""
    if result.failed:
        status_emoji, status_color = "💀", "bold red"
    elif result.state is TerminationState.CONVERGED:
        status_emoji, status_color = "🏆", "bold green"
    else:
        status_emoji, status_color = "🛑", "bold yellow"

    lines = [
        f"[{status_color}]{status_emoji} {result.reason.value.replace('_', ' ').upper()}[/{status_color}]",
        "",
        f"  Best cost    : {result.best_cost:.6e}",
        f"  Generations  : {result.generations}",
        f"  Evaluations  : {result.evaluations:,}",
        f"  Final sigma  : {result.sigma:.6e}",
        f"  Time         : {elapsed:.2f}s",
    ]
    preview = result.best_solution[:min(5, len(result.best_solution))].tolist()
    lines.append(f"  Best point   : {preview}{'...' if len(result.best_solution) > 5 else ''}")

    console_wrapper(
        Panel("\n".join(lines), title="CMA-ES Result", border_style=status_color, padding=(1, 2)),
        watch_path,
    )
