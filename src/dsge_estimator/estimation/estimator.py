"""推定パイプライン

標本期間の切り出し → 事後モード探索 → MHサンプリング → ドロー保存 → 結果集約
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from dsge_estimator.core.model import DSGEModel
from dsge_estimator.core.solver import SolverConfig
from dsge_estimator.estimation.data_loader import ObservationTable, SampleWindow
from dsge_estimator.estimation.draws import DrawStore
from dsge_estimator.estimation.kalman_filter import KalmanConfig
from dsge_estimator.estimation.likelihood import log_posterior
from dsge_estimator.estimation.mcmc import BlockedMetropolisHastings, MCMCConfig, sample
from dsge_estimator.estimation.mode import ModeSearchConfig, find_mode
from dsge_estimator.estimation.results import EstimationResult, build_estimation_result

__all__ = ["EstimationConfig", "estimate"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EstimationConfig:
    """推定全体の設定"""

    window: SampleWindow = field(default_factory=SampleWindow)
    mode: ModeSearchConfig = field(default_factory=ModeSearchConfig)
    mcmc: MCMCConfig = field(default_factory=MCMCConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    kalman: KalmanConfig = field(default_factory=KalmanConfig)
    tag: str = "posterior"


def estimate(
    model: DSGEModel,
    table: ObservationTable,
    config: EstimationConfig | None = None,
    store: DrawStore | None = None,
    *,
    sampler_callback: Callable[[BlockedMetropolisHastings], None] | None = None,
) -> EstimationResult:
    """モデルをデータから推定する

    モデルのレジストリの現在値をモード探索の初期値とし、終了時はモードに設定される。

    Args:
        model: DSGEモデル
        table: 観測データ（モデルの観測変数の列を含む）
        config: 推定設定
        store: ドローの保存先。Noneの場合は保存しない。
        sampler_callback: 構築したサンプラーを受け取る関数（中断制御用）

    Returns:
        EstimationResult
    """
    cfg = config or EstimationConfig()
    selected = table.select(model.spec.observables)
    windowed, n_presample = cfg.window.apply(selected)
    data = windowed.values
    logger.info(
        "推定開始: 期間 %s - %s (%d期, プレサンプル %d期), 自由パラメータ %d",
        windowed.dates[0],
        windowed.dates[-1],
        windowed.n_periods,
        n_presample,
        model.parameters.n_free,
    )

    mode, hessian = find_mode(
        model,
        data,
        cfg.mode,
        n_presample=n_presample,
        solver_config=cfg.solver,
        kalman_config=cfg.kalman,
    )
    mode_lp = log_posterior(
        model,
        data,
        mode,
        n_presample=n_presample,
        solver_config=cfg.solver,
        kalman_config=cfg.kalman,
    )

    draws = sample(
        model,
        data,
        mode,
        hessian,
        cfg.mcmc,
        n_presample=n_presample,
        solver_config=cfg.solver,
        kalman_config=cfg.kalman,
        sampler_callback=sampler_callback,
    )
    if not draws.complete:
        logger.warning("サンプリングが中断されました（ドロー %d 件）", draws.n_draws)

    tag = None
    if store is not None:
        store.store(draws, cfg.tag)
        tag = cfg.tag

    return build_estimation_result(
        draws,
        mode,
        mode_lp,
        hessian,
        model.parameters,
        n_presample=n_presample,
        tag=tag,
    )
