"""CLIコマンドのテスト"""

from pathlib import Path

import numpy as np
from typer.testing import CliRunner

from dsge_estimator.cli.main import app
from dsge_estimator.estimation.data_loader import ObservationTable
from dsge_estimator.estimation.draws import DrawStore

runner = CliRunner()


class TestSolveCommand:
    """solveコマンドのテスト"""

    def test_solve_ma1(self) -> None:
        result = runner.invoke(app, ["solve", "--model", "ma1"])
        assert result.exit_code == 0
        assert "gensys" in result.output

    def test_solve_present_value(self) -> None:
        result = runner.invoke(app, ["solve", "-m", "present_value"])
        assert result.exit_code == 0

    def test_unknown_model(self) -> None:
        result = runner.invoke(app, ["solve", "--model", "unknown"])
        assert result.exit_code == 1


class TestPriorDrawsCommand:
    """prior-drawsコマンドのテスト"""

    def test_prior_draws_saved(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app,
            ["prior-draws", "--draws", "20", "--seed", "1", "--output", str(tmp_path), "--tag", "p1"],
        )
        assert result.exit_code == 0
        draws = DrawStore(tmp_path).retrieve("p1")
        assert draws.n_draws == 20

    def test_invalid_tag(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["prior-draws", "--draws", "5", "--output", str(tmp_path), "--tag", "../x"]
        )
        assert result.exit_code == 1


class TestSimulateCommand:
    """simulateコマンドのテスト"""

    def test_simulate_writes_csv(self, tmp_path: Path) -> None:
        output = tmp_path / "sim" / "ma1.csv"
        result = runner.invoke(
            app, ["simulate", "--periods", "40", "--seed", "3", "--output", str(output)]
        )
        assert result.exit_code == 0
        table = ObservationTable.from_csv(output)
        assert table.n_periods == 40
        assert table.columns == ("x_t",)


class TestEstimateCommand:
    """estimateコマンドのテスト"""

    def test_estimate_synthetic(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app,
            [
                "estimate",
                "--synthetic",
                "--synthetic-periods",
                "150",
                "--simulations",
                "200",
                "--burn",
                "50",
                "--seed",
                "0",
                "--output",
                str(tmp_path),
            ],
        )
        assert result.exit_code == 0, result.output
        assert (tmp_path / "posterior.npz").exists()
        assert (tmp_path / "summary.md").exists()
        assert np.load(tmp_path / "mode.npy").shape == (3,)

    def test_estimate_from_csv_with_window(self, tmp_path: Path) -> None:
        data_file = tmp_path / "obs.csv"
        runner.invoke(app, ["simulate", "--periods", "120", "--seed", "5", "-o", str(data_file)])
        result = runner.invoke(
            app,
            [
                "estimate",
                str(data_file),
                "--simulations",
                "100",
                "--burn",
                "10",
                "--seed",
                "1",
                "--presample-start",
                "1994Q1",
                "--mainsample-start",
                "1995Q1",
            ],
        )
        assert result.exit_code == 0, result.output

    def test_estimate_without_data(self) -> None:
        result = runner.invoke(app, ["estimate"])
        assert result.exit_code == 1

    def test_invalid_burn(self) -> None:
        result = runner.invoke(
            app, ["estimate", "--synthetic", "--simulations", "10", "--burn", "10"]
        )
        assert result.exit_code == 1


class TestVersionCommand:
    """versionコマンドのテスト"""

    def test_version(self) -> None:
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "dsge-estimator version" in result.output
