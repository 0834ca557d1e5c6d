"""事後モード探索

負の対数事後確率を制約なし空間で最小化し（scipy BFGS）、
モデル空間でのモードと、そこでの負の対数事後確率のヘシアンを返す。
ヘシアンは提案共分散（H^{-1}）の構築に使われる。
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

import numpy as np
import scipy.optimize

from dsge_estimator.core.exceptions import NumericalError, OptimizationError
from dsge_estimator.core.model import DSGEModel
from dsge_estimator.core.solver import SolverConfig
from dsge_estimator.estimation.kalman_filter import KalmanConfig
from dsge_estimator.estimation.likelihood import make_log_posterior
from dsge_estimator.parameters.constants import MODE_SEARCH_CONSTANTS

__all__ = ["ModeSearchConfig", "compute_hessian", "find_mode"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModeSearchConfig:
    """モード探索設定"""

    max_iterations: int = MODE_SEARCH_CONSTANTS.max_iterations
    gradient_tolerance: float = MODE_SEARCH_CONSTANTS.gradient_tolerance
    hessian_step: float = MODE_SEARCH_CONSTANTS.hessian_step


def _theta_note(theta: np.ndarray) -> str:
    return f"theta = {np.array2string(np.asarray(theta), precision=6)}"


def find_mode(
    model: DSGEModel,
    data: np.ndarray,
    config: ModeSearchConfig | None = None,
    *,
    n_presample: int = 0,
    solver_config: SolverConfig | None = None,
    kalman_config: KalmanConfig | None = None,
) -> tuple[np.ndarray, np.ndarray]:
    """事後モードとヘシアンを求める

    レジストリの現在の自由パラメータ値を初期値とし、成功時はレジストリをモードに設定する。
    固定パラメータは探索中も一定に保たれる。

    Args:
        model: DSGEモデル
        data: (T_obs, n_obs) 観測データ
        config: モード探索設定
        n_presample: 尤度から除外する先頭期間数

    Returns:
        (mode, hessian) のタプル。いずれもモデル空間の自由パラメータ上。

    Raises:
        OptimizationError: 初期値が不正・反復上限到達・ヘシアンが正定値でない・
            探索中に数値エラーが発生した場合
    """
    cfg = config or ModeSearchConfig()
    params = model.parameters
    log_post = make_log_posterior(
        model,
        data,
        n_presample=n_presample,
        reject_numerical=False,
        solver_config=solver_config,
        kalman_config=kalman_config,
    )

    def neg_log_posterior(theta: np.ndarray) -> float:
        try:
            lp = log_post(theta)
        except NumericalError as e:
            err = OptimizationError(f"モード探索中に数値エラーが発生しました: {e}")
            err.add_note(_theta_note(theta))
            raise err from e
        return -lp

    theta0 = params.free_values()
    f0 = neg_log_posterior(theta0)
    if not np.isfinite(f0):
        err = OptimizationError("初期値での対数事後確率が有限ではありません")
        err.add_note(_theta_note(theta0))
        raise err

    penalty = MODE_SEARCH_CONSTANTS.infeasible_penalty

    def objective(x: np.ndarray) -> float:
        value = neg_log_posterior(params.to_model(x))
        if not np.isfinite(value):
            return penalty
        return value

    x0 = params.to_unconstrained(theta0)
    result = scipy.optimize.minimize(
        objective,
        x0,
        method="BFGS",
        options={"maxiter": cfg.max_iterations, "gtol": cfg.gradient_tolerance},
    )

    if result.status == 1:
        raise OptimizationError(
            f"モード探索が反復上限({cfg.max_iterations})に達しました: {result.message}"
        )
    if not np.all(np.isfinite(result.x)):
        raise OptimizationError(f"モード探索が発散しました: {result.message}")
    if not result.success:
        # 精度損失による停止はモード近傍で起きやすいため続行する
        logger.warning("モード探索が収束判定を満たさず停止: %s", result.message)

    mode = params.to_model(result.x)
    hessian = compute_hessian(
        neg_log_posterior, mode, cfg.hessian_step, bounds=params.free_support()
    )

    if not np.all(np.isfinite(hessian)):
        err = OptimizationError("モードでのヘシアンが有限ではありません")
        err.add_note(_theta_note(mode))
        raise err
    eigvals = np.linalg.eigvalsh(hessian)
    # 数値的に特異なヘシアンも正定値とみなさない
    pd_floor = np.finfo(float).eps * len(eigvals) * float(np.max(np.abs(eigvals), initial=0.0))
    if np.any(eigvals <= pd_floor):
        err = OptimizationError(
            f"モードでのヘシアンが正定値ではありません (最小固有値 {eigvals.min():.3e})"
        )
        err.add_note(_theta_note(mode))
        raise err

    params.set_free_values(mode)
    logger.info(
        "モード探索完了: 反復 %d 回, 対数事後確率 %.4f", result.nit, -float(result.fun)
    )
    return mode, hessian


def compute_hessian(
    f: Callable[[np.ndarray], float],
    x: np.ndarray,
    step: float = MODE_SEARCH_CONSTANTS.hessian_step,
    bounds: np.ndarray | None = None,
) -> np.ndarray:
    """中心差分でヘシアンを数値近似する

    刻み幅は各座標で step * max(1, |x_i|)。bounds (n, 2) を与えた場合は
    評価点 x ± 2h が開区間 (lower, upper) の内側に収まるよう刻み幅を縮める。
    """
    n = x.shape[0]
    h = step * np.maximum(1.0, np.abs(x))
    if bounds is not None:
        distance = np.minimum(x - bounds[:, 0], bounds[:, 1] - x)
        h = np.minimum(h, 0.25 * distance)
        if np.any(h <= 0.0):
            raise OptimizationError("評価点が台の境界上にあるためヘシアンを計算できません")
    hessian = np.zeros((n, n))

    for i in range(n):
        ei = np.zeros(n)
        ei[i] = h[i]
        for j in range(i, n):
            ej = np.zeros(n)
            ej[j] = h[j]

            fpp = f(x + ei + ej)
            fpm = f(x + ei - ej)
            fmp = f(x - ei + ej)
            fmm = f(x - ei - ej)

            hessian[i, j] = (fpp - fpm - fmp + fmm) / (4.0 * h[i] * h[j])
            hessian[j, i] = hessian[i, j]

    return hessian
