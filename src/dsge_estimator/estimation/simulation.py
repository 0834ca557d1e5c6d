"""解かれた状態空間モデルからの観測データ生成

テスト・検証および合成データによる推定に使用する。
"""

import numpy as np

from dsge_estimator.core.model import DSGEModel
from dsge_estimator.estimation.data_loader import ObservationTable, quarterly_dates
from dsge_estimator.estimation.kalman_filter import KalmanConfig, initial_moments
from dsge_estimator.estimation.likelihood import solve_model
from dsge_estimator.estimation.measurement import measurement

__all__ = ["simulate"]


def simulate(
    model: DSGEModel,
    n_periods: int,
    rng: np.random.Generator | None = None,
    start_date: str = "1994Q1",
) -> ObservationTable:
    """現在のパラメータ値でモデルをシミュレートし観測データを生成する

    1. モデルを解き観測方程式を構築
    2. 初期状態を定常分布から抽出（非定常なら定数項から開始）
    3. ショック ε_t ~ N(0, Q) で状態を更新
    4. 観測値 y_t = D + Z s_t + u_t + M ε_t, u_t ~ N(0, E)

    Args:
        model: DSGEモデル
        n_periods: シミュレーション期間数
        rng: 乱数生成器。Noneの場合はデフォルトを使用。
        start_date: 先頭の四半期ラベル

    Returns:
        ObservationTable（列はモデルの観測変数順）
    """
    rng = rng or np.random.default_rng()
    spec = model.spec
    solved = solve_model(model)
    ms = measurement(model, solved.T, solved.R, solved.C)

    n_states = spec.n_states
    config = KalmanConfig()
    s_mean, P0 = initial_moments(solved.T, solved.C, ms.state_covariance, config)
    spectral_radius = float(np.max(np.abs(np.linalg.eigvals(solved.T)))) if n_states else 0.0
    if spectral_radius < 1.0 - config.stationarity_margin:
        state = rng.multivariate_normal(s_mean, P0)
    else:
        state = s_mean

    shocks = rng.multivariate_normal(np.zeros(spec.n_shocks), ms.Q, size=n_periods)
    noise = rng.multivariate_normal(np.zeros(spec.n_observables), ms.E, size=n_periods)

    values = np.empty((n_periods, spec.n_observables))
    for t in range(n_periods):
        state = solved.T @ state + solved.R @ shocks[t] + solved.C
        values[t] = ms.D + ms.Z @ state + noise[t] + ms.M @ shocks[t]

    return ObservationTable(
        values=values,
        dates=tuple(quarterly_dates(n_periods, start_date)),
        columns=spec.observables,
    )
