"""CLIメインエントリーポイント"""

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from dsge_estimator import __version__
from dsge_estimator.cli.commands import (
    estimate_command,
    prior_draws_command,
    simulate_command,
    solve_command,
)

app = typer.Typer(
    name="dsge-estimator",
    help="線形DSGEモデルのベイズ推定",
    no_args_is_help=True,
)
console = Console()

ModelOption = Annotated[
    str,
    typer.Option("--model", "-m", help="モデル名: ma1, present_value"),
]


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="詳細ログを表示"),
    ] = False,
) -> None:
    """線形DSGEモデルのベイズ推定"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@app.command("solve")
def solve(model: ModelOption = "ma1") -> None:
    """モデルを解いて遷移・観測方程式を表示

    例:
        dsge-estimator solve --model present_value
    """
    solve_command(model)


@app.command("prior-draws")
def prior_draws(
    model: ModelOption = "ma1",
    n_draws: Annotated[
        int,
        typer.Option("--draws", "-d", help="ドロー数"),
    ] = 1000,
    seed: Annotated[
        int | None,
        typer.Option("--seed", help="乱数シード"),
    ] = None,
    require_solution: Annotated[
        bool,
        typer.Option("--require-solution", help="一意な安定解を持つドローのみ保持"),
    ] = False,
    store_dir: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="ドローの保存ディレクトリ"),
    ] = None,
    tag: Annotated[
        str,
        typer.Option("--tag", help="保存タグ"),
    ] = "prior",
) -> None:
    """事前分布からドローを生成

    例:
        dsge-estimator prior-draws --model ma1 --draws 500 --output draws/
    """
    prior_draws_command(model, n_draws, seed, require_solution, store_dir, tag)


@app.command("simulate")
def simulate(
    model: ModelOption = "ma1",
    periods: Annotated[
        int,
        typer.Option("--periods", "-p", help="シミュレーション期間（四半期）"),
    ] = 200,
    output_file: Annotated[
        Path,
        typer.Option("--output", "-o", help="出力CSVファイルパス"),
    ] = Path("data/synthetic.csv"),
    seed: Annotated[
        int | None,
        typer.Option("--seed", help="乱数シード"),
    ] = None,
) -> None:
    """モデルから合成データを生成してCSV出力

    例:
        dsge-estimator simulate --model ma1 --periods 100 -o data/ma1.csv
    """
    simulate_command(model, periods, output_file, seed)


@app.command("estimate")
def estimate(
    data_file: Annotated[
        Path | None,
        typer.Argument(help="観測データCSVファイル"),
    ] = None,
    model: ModelOption = "ma1",
    synthetic: Annotated[
        bool,
        typer.Option("--synthetic", help="合成データを使用"),
    ] = False,
    synthetic_periods: Annotated[
        int,
        typer.Option("--synthetic-periods", help="合成データの期間数"),
    ] = 200,
    simulations: Annotated[
        int,
        typer.Option("--simulations", "-n", help="チェーンあたりの反復数"),
    ] = 10_000,
    burn: Annotated[
        int,
        typer.Option("--burn", help="バーンイン数"),
    ] = 1_000,
    blocks: Annotated[
        int,
        typer.Option("--blocks", help="パラメータブロック数"),
    ] = 1,
    chains: Annotated[
        int,
        typer.Option("--chains", help="チェーン数"),
    ] = 1,
    seed: Annotated[
        int | None,
        typer.Option("--seed", help="乱数シード"),
    ] = None,
    presample_start: Annotated[
        str | None,
        typer.Option("--presample-start", help="プレサンプル開始（例: 1994Q1）"),
    ] = None,
    mainsample_start: Annotated[
        str | None,
        typer.Option("--mainsample-start", help="本標本開始"),
    ] = None,
    mainsample_end: Annotated[
        str | None,
        typer.Option("--mainsample-end", help="本標本終了"),
    ] = None,
    output_dir: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="結果・ドローの保存ディレクトリ"),
    ] = None,
    tag: Annotated[
        str,
        typer.Option("--tag", help="ドローの保存タグ"),
    ] = "posterior",
) -> None:
    """ベイズ推定（モード探索 + ブロックMetropolis-Hastings）を実行

    例:
        dsge-estimator estimate data.csv --model ma1 --simulations 5000 --burn 500 -o results/
        dsge-estimator estimate --synthetic --simulations 500 --burn 100 --chains 2
    """
    estimate_command(
        model,
        data_file,
        synthetic,
        synthetic_periods,
        simulations,
        burn,
        blocks,
        chains,
        seed,
        presample_start,
        mainsample_start,
        mainsample_end,
        output_dir,
        tag,
    )


@app.command("version")
def version() -> None:
    """バージョン情報を表示"""
    console.print(f"dsge-estimator version {__version__}")


if __name__ == "__main__":
    app()
