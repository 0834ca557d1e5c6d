"""CLIコマンド実装"""

from collections.abc import Callable
from functools import wraps
from pathlib import Path

import numpy as np
import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from dsge_estimator.core.exceptions import DSGEError, SolverError, ValidationError
from dsge_estimator.core.model import DSGEModel
from dsge_estimator.core.solver import GensysSolver
from dsge_estimator.estimation.data_loader import ObservationTable, SampleWindow
from dsge_estimator.estimation.draws import DrawStore
from dsge_estimator.estimation.estimator import EstimationConfig, estimate
from dsge_estimator.estimation.mcmc import MCMCConfig, sample_prior
from dsge_estimator.estimation.measurement import measurement
from dsge_estimator.estimation.simulation import simulate
from dsge_estimator.models import MODELS

console = Console()


def handle_dsge_error[F: Callable[..., None]](func: F) -> F:
    """CLI用エラーハンドリングデコレータ

    推定コアの例外を捕捉し、種類に応じた終了コードで終了する。
    """

    @wraps(func)
    def wrapper(*args: object, **kwargs: object) -> None:
        try:
            func(*args, **kwargs)
        except ValidationError as e:
            console.print(f"[red]入力エラー: {e}[/red]")
            raise typer.Exit(1) from e
        except SolverError as e:
            console.print(f"[red]計算エラー: {e}[/red]")
            raise typer.Exit(2) from e
        except DSGEError as e:
            console.print(f"[red]エラー: {e}[/red]")
            raise typer.Exit(3) from e

    return wrapper  # type: ignore[return-value]


def create_model(name: str) -> DSGEModel:
    """登録済みモデルをデフォルトのパラメータ値で生成する"""
    try:
        model_cls = MODELS[name]
    except KeyError:
        raise ValidationError(f"不明なモデルです: '{name}' (有効: {sorted(MODELS)})") from None
    return model_cls()


def _matrix_table(title: str, matrix: np.ndarray, rows: tuple[str, ...], cols: tuple[str, ...]) -> Table:
    table = Table(title=title)
    table.add_column("", style="cyan")
    for c in cols:
        table.add_column(c, style="green", justify="right")
    for name, row in zip(rows, matrix, strict=True):
        table.add_row(name, *(f"{v:+.4f}" for v in row))
    return table


@handle_dsge_error
def solve_command(model_name: str) -> None:
    """現在のパラメータ値でモデルを解き、遷移・観測方程式を表示"""
    model = create_model(model_name)
    system = model.equilibrium_conditions()
    system.validate(model.spec)
    result = GensysSolver(system.gamma0, system.gamma1, system.c, system.psi, system.pi).solve(
        emit_warnings=True
    )
    ms = measurement(model, result.T, result.R, result.C)
    spec = model.spec

    params_text = "\n".join(
        f"{p.name} = {p.value:.4f}{' (固定)' if p.fixed else ''}" for p in model.parameters
    )
    console.print(
        Panel(
            f"[bold]{model.name}[/bold]\n{result.message}\n\n{params_text}",
            title="gensys",
        )
    )
    console.print(_matrix_table("T", result.T, spec.states, spec.states))
    console.print(_matrix_table("R", result.R, spec.states, spec.shocks))
    console.print(_matrix_table("Z", ms.Z, spec.observables, spec.states))
    console.print(_matrix_table("D", ms.D[:, np.newaxis], spec.observables, ("D",)))


@handle_dsge_error
def prior_draws_command(
    model_name: str,
    n_draws: int,
    seed: int | None,
    require_solution: bool,
    store_dir: Path | None,
    tag: str,
) -> None:
    """事前分布からドローを生成して保存"""
    model = create_model(model_name)
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        progress.add_task("事前分布からサンプリング中...", total=None)
        draws = sample_prior(model, n_draws, seed=seed, require_solution=require_solution)

    table = Table(title=f"事前ドロー ({draws.n_draws}件)")
    table.add_column("パラメータ", style="cyan")
    table.add_column("平均", style="green", justify="right")
    table.add_column("標準偏差", style="green", justify="right")
    for name in draws.parameter_names:
        column = draws.column(name)
        table.add_row(name, f"{np.mean(column):.4f}", f"{np.std(column):.4f}")
    console.print(table)

    if store_dir is not None:
        path = DrawStore(store_dir).store(draws, tag)
        console.print(f"[green]保存しました: {path}[/green]")


@handle_dsge_error
def simulate_command(model_name: str, periods: int, output_file: Path, seed: int | None) -> None:
    """モデルから合成データを生成してCSV出力"""
    model = create_model(model_name)
    table = simulate(model, periods, rng=np.random.default_rng(seed))
    output_file.parent.mkdir(parents=True, exist_ok=True)
    table.to_csv(output_file)
    console.print(f"[green]合成データを出力しました: {output_file} ({table.n_periods}期間)[/green]")


@handle_dsge_error
def estimate_command(
    model_name: str,
    data_file: Path | None,
    synthetic: bool,
    synthetic_periods: int,
    simulations: int,
    burn: int,
    blocks: int,
    chains: int,
    seed: int | None,
    presample_start: str | None,
    mainsample_start: str | None,
    mainsample_end: str | None,
    output_dir: Path | None,
    tag: str,
) -> None:
    """ベイズ推定（モード探索 + ブロックMH）を実行"""
    model = create_model(model_name)

    if synthetic:
        table = simulate(model, synthetic_periods, rng=np.random.default_rng(seed))
        console.print(f"[cyan]合成データを生成: {synthetic_periods}期間[/cyan]")
    elif data_file is not None:
        table = ObservationTable.from_csv(data_file)
        console.print(f"[cyan]データ読み込み完了: {data_file} ({table.n_periods}期間)[/cyan]")
    else:
        console.print("[red]データファイルまたは --synthetic を指定してください[/red]")
        raise typer.Exit(1)

    config = EstimationConfig(
        window=SampleWindow(
            presample_start=presample_start,
            mainsample_start=mainsample_start,
            mainsample_end=mainsample_end,
        ),
        mcmc=MCMCConfig(
            n_blocks=blocks,
            n_simulations=simulations,
            n_burn=burn,
            n_chains=chains,
            seed=seed,
        ),
        tag=tag,
    )
    store = DrawStore(output_dir) if output_dir is not None else None

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        progress.add_task("モード探索・MCMC推定を実行中...", total=None)
        result = estimate(model, table, config, store)

    diag = result.diagnostics
    console.print()
    console.print(
        Panel(
            f"[bold]ベイズ推定結果[/bold]\n"
            f"モデル: {model.name}\n"
            f"チェーン数: {chains}\n"
            f"ドロー数: {result.draws.n_draws}\n"
            f"収束判定: {'[green]OK[/green]' if diag.converged else '[red]NG[/red]'}\n"
            f"対数周辺尤度 (Laplace): {result.log_marginal_likelihood:.2f}",
            title="Bayesian Estimation",
        )
    )

    acc_table = Table(title="ブロック別受容率")
    acc_table.add_column("チェーン", style="cyan")
    acc_table.add_column("受容率", style="green")
    for i, rates in enumerate(diag.acceptance_rates):
        acc_table.add_row(f"Chain {i}", ", ".join(f"{r:.3f}" for r in rates))
    console.print(acc_table)

    console.print()
    console.print(result.summary_table())

    if output_dir is not None:
        np.save(output_dir / "mode.npy", result.mode)
        np.save(output_dir / "hessian.npy", result.hessian)
        (output_dir / "summary.md").write_text(result.summary_table(), encoding="utf-8")
        console.print(f"\n[green]結果を保存しました: {output_dir} (タグ '{tag}')[/green]")
