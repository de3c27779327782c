"""
Tests for the command-line driver.
"""

import json
import pytest

from cmaes_engine.checkpoint import load_result
from cmaes_engine.cli import main


def test_run_and_save(tmp_path):
    output = tmp_path / "result.pkl"
    code = main([
        "--objective", "sphere",
        "--dimension", "3",
        "--seed", "1",
        "--max-iter", "40",
        "--output", str(output),
    ])

    assert code == 0
    result = load_result(str(output))
    assert result is not None
    assert result.generations <= 40
    assert result.best_cost < 3.0


def test_explicit_x0_and_config_file(tmp_path):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"cmaes": {"max_iter": 5, "sigma0": 0.5}}))
    output = tmp_path / "out.pkl"

    code = main([
        "--objective", "rosenbrock",
        "--x0", "0.0", "0.0",
        "--config", str(config_path),
        "--seed", "2",
        "--output", str(output),
    ])

    assert code == 0
    result = load_result(str(output))
    assert result.generations <= 5
    assert len(result.best_solution) == 2


def test_usage_errors_exit_with_two(tmp_path):
    assert main(["--x0", "1.0", "2.0", "--dimension", "3"]) == 2
    assert main(["--dimension", "0"]) == 2
    assert main(["--config", str(tmp_path / "missing.json")]) == 2
    assert main(["--sigma0", "-1"]) == 2


def test_unknown_objective_rejected_by_parser():
    with pytest.raises(SystemExit):
        main(["--objective", "unknown"])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
