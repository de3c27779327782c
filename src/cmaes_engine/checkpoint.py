"""
Save/load of CMA-ES run results.
"""

import os
import pickle
from typing import Optional

from .data_structures import OptimizationResult
from .reporting import console


def save_result(result_path: str, result: OptimizationResult) -> bool:
    """
    Save a run result to disk.

    Save failures are reported but not raised, so a finished run is never
    lost to an unwritable output path.

    Args:
        result_path: Path to save result file
        result: Result of a finished run

    Returns:
        True if the result was written
    """
    try:
        result_dir = os.path.dirname(result_path)
        if result_dir:
            os.makedirs(result_dir, exist_ok=True)

        with open(result_path, 'wb') as f:
            pickle.dump(result, f)

        console.print(
            f"[green]💾 Result saved: {result.reason.value}, "
            f"best cost: {result.best_cost:.6e}[/green]"
        )
        return True

    except (OSError, pickle.PicklingError) as e:
        console.print(
            f"[yellow]⚠️ Result save failed: {e}[/yellow]"
        )
        return False


def load_result(result_path: str) -> Optional[OptimizationResult]:
    """
    Load a run result from disk.

    Returns:
        OptimizationResult if successful, None if the file is missing,
        corrupted or holds something else
    """
    if not os.path.exists(result_path):
        console.print(
            f"[cyan]ℹ️ No result found at {result_path}[/cyan]"
        )
        return None

    try:
        with open(result_path, 'rb') as f:
            result = pickle.load(f)

    except (pickle.UnpicklingError, EOFError, AttributeError, ImportError, ValueError) as e:
        console.print(
            f"[yellow]⚠️ Result file corrupted: {e}[/yellow]"
        )
        return None

    if not isinstance(result, OptimizationResult):
        console.print(
            f"[yellow]⚠️ Result file has invalid format[/yellow]"
        )
        return None

    console.print(
        f"[green]✅ Result loaded: {result.reason.value}, "
        f"best cost: {result.best_cost:.6e}[/green]"
    )
    return result
