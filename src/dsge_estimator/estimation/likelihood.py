"""尤度・事後確率の評価

パラメータ値 → 平衡条件 → gensys → 観測方程式 → Kalmanフィルタ の連鎖をまとめる。
モデルのレジストリの値を評価ごとに明示的に設定するため、
並列に評価する場合はモデルの作業用コピー（DSGEModel.copy）を使う。
"""

import logging
from collections.abc import Callable

import numpy as np

from dsge_estimator.core.exceptions import (
    DimensionError,
    NumericalError,
    ParameterValidationError,
    ShapeError,
    SolutionError,
)
from dsge_estimator.core.model import DSGEModel, SolvedSystem
from dsge_estimator.core.solver import GensysSolver, SolverConfig
from dsge_estimator.estimation.kalman_filter import (
    KalmanConfig,
    KalmanFilterResult,
    kalman_filter,
)
from dsge_estimator.estimation.measurement import measurement

__all__ = [
    "filter_model",
    "likelihood",
    "log_posterior",
    "make_log_posterior",
    "solve_model",
]

logger = logging.getLogger(__name__)


def solve_model(model: DSGEModel, solver_config: SolverConfig | None = None) -> SolvedSystem:
    """現在のパラメータ値でモデルを解く

    Raises:
        DimensionError: 平衡条件ビルダーが不正な形状の行列を返した場合
        SolutionError: 一意な安定解が存在しない場合
    """
    system = model.equilibrium_conditions()
    system.validate(model.spec)
    result = GensysSolver(
        system.gamma0, system.gamma1, system.c, system.psi, system.pi, config=solver_config
    ).solve()
    return SolvedSystem(T=result.T, R=result.R, C=result.C)


def filter_model(
    model: DSGEModel,
    data: np.ndarray,
    *,
    n_presample: int = 0,
    solver_config: SolverConfig | None = None,
    kalman_config: KalmanConfig | None = None,
) -> KalmanFilterResult:
    """現在のパラメータ値でモデルを解き、Kalmanフィルタを実行する"""
    solved = solve_model(model, solver_config)
    ms = measurement(model, solved.T, solved.R, solved.C)
    return kalman_filter(
        data,
        solved.T,
        solved.R,
        solved.C,
        ms.Z,
        ms.D,
        ms.combined,
        n_presample=n_presample,
        config=kalman_config,
    )


def likelihood(
    model: DSGEModel,
    data: np.ndarray,
    *,
    n_presample: int = 0,
    solver_config: SolverConfig | None = None,
    kalman_config: KalmanConfig | None = None,
) -> float:
    """現在のパラメータ値での対数尤度"""
    result = filter_model(
        model,
        data,
        n_presample=n_presample,
        solver_config=solver_config,
        kalman_config=kalman_config,
    )
    return result.log_likelihood


def log_posterior(
    model: DSGEModel,
    data: np.ndarray,
    theta: np.ndarray | None = None,
    *,
    n_presample: int = 0,
    solver_config: SolverConfig | None = None,
    kalman_config: KalmanConfig | None = None,
) -> float:
    """対数事後確率 log p(θ|y) = log p(y|θ) + log p(θ)

    Args:
        model: DSGEモデル
        data: (T_obs, n_obs) 観測データ
        theta: 自由パラメータベクトル（モデル空間）。Noneの場合は現在値。

    Returns:
        対数事後確率。事前分布の台の外では -inf（モデルは評価しない）。
    """
    params = model.parameters
    if theta is not None:
        if not params.in_support(theta):
            return -np.inf
        params.set_free_values(theta)

    lp = params.log_prior()
    if not np.isfinite(lp):
        return -np.inf

    ll = likelihood(
        model,
        data,
        n_presample=n_presample,
        solver_config=solver_config,
        kalman_config=kalman_config,
    )
    if not np.isfinite(ll):
        return -np.inf
    return lp + ll


def make_log_posterior(
    model: DSGEModel,
    data: np.ndarray,
    *,
    n_presample: int = 0,
    reject_numerical: bool = True,
    solver_config: SolverConfig | None = None,
    kalman_config: KalmanConfig | None = None,
) -> Callable[[np.ndarray], float]:
    """自由パラメータベクトル → 対数事後確率 の関数を構築する

    解が存在しない・不決定なパラメータは -inf を返す（提案の棄却）。
    NumericalError は reject_numerical=True の場合のみ -inf とし、
    それ以外は送出する。次元・形状エラーはθを注記して常に送出する。

    Args:
        model: DSGEモデル（このモデルのレジストリを書き換える）
        data: (T_obs, n_obs) 観測データ
        n_presample: 尤度から除外する先頭期間数
        reject_numerical: NumericalError を棄却として扱うか

    Returns:
        log_posterior(theta) → float を返す関数
    """

    def log_posterior_fn(theta: np.ndarray) -> float:
        try:
            return log_posterior(
                model,
                data,
                theta,
                n_presample=n_presample,
                solver_config=solver_config,
                kalman_config=kalman_config,
            )
        except (SolutionError, ParameterValidationError) as e:
            logger.debug("提案を棄却: %s", e)
            return -np.inf
        except NumericalError as e:
            if reject_numerical:
                logger.debug("数値エラーにより提案を棄却: %s", e)
                return -np.inf
            e.add_note(f"theta = {np.array2string(np.asarray(theta), precision=6)}")
            raise
        except (DimensionError, ShapeError) as e:
            e.add_note(f"theta = {np.array2string(np.asarray(theta), precision=6)}")
            raise

    return log_posterior_fn
