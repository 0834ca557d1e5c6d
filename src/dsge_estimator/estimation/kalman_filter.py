"""Kalmanフィルタ

線形ガウス状態空間モデルに対するKalmanフィルタを実装する。

状態空間モデル:
    s_t = T @ s_{t-1} + R @ ε_t + C,      ε_t ~ N(0, Q)
    y_t = D + Z @ s_t + u_t + M @ ε_t,    u_t ~ N(0, E)

状態ショックと観測誤差の同時点相関 G = R Q M' を更新式に含める。
"""

import logging
from dataclasses import dataclass

import numpy as np
import scipy.linalg

from dsge_estimator.core.exceptions import DimensionError, NumericalError
from dsge_estimator.parameters.constants import FILTER_CONSTANTS

__all__ = ["KalmanConfig", "KalmanFilterResult", "initial_moments", "kalman_filter"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KalmanConfig:
    """Kalmanフィルタの設定

    Attributes:
        diffuse_variance: 非定常モデルの散漫初期分散
        pd_tolerance: 予測誤差共分散の正則化に使う対角加算量
        min_innovation_scale: 正則化を許す最大固有値の下限（pd_tolerance の倍数）
        stationarity_margin: スペクトル半径 < 1 - margin で定常初期化する
    """

    diffuse_variance: float = FILTER_CONSTANTS.diffuse_variance
    pd_tolerance: float = FILTER_CONSTANTS.pd_tolerance
    min_innovation_scale: float = FILTER_CONSTANTS.min_innovation_scale
    stationarity_margin: float = FILTER_CONSTANTS.stationarity_margin


@dataclass
class KalmanFilterResult:
    """Kalmanフィルタの結果

    Attributes:
        log_likelihood: 対数尤度（プレサンプル期間を除く）
        filtered_states: フィルタ済み状態推定値 (T_obs, n_states)
        filtered_covariances: フィルタ済み共分散 (T_obs, n_states, n_states)
        prediction_errors: 予測誤差 (T_obs, n_obs)。欠損はNaN。
        period_log_likelihoods: 各期の対数尤度貢献 (T_obs,)
    """

    log_likelihood: float
    filtered_states: np.ndarray
    filtered_covariances: np.ndarray
    prediction_errors: np.ndarray
    period_log_likelihoods: np.ndarray


def kalman_filter(
    data: np.ndarray,
    T: np.ndarray,
    R: np.ndarray,
    C: np.ndarray,
    Z: np.ndarray,
    D: np.ndarray,
    combined: np.ndarray,
    *,
    s0: np.ndarray | None = None,
    P0: np.ndarray | None = None,
    n_presample: int = 0,
    config: KalmanConfig | None = None,
) -> KalmanFilterResult:
    """Kalmanフィルタ

    Args:
        data: (T_obs, n_obs) 観測データ。欠損値はNaN。
        T: (n_states, n_states) 状態遷移行列
        R: (n_states, n_shocks) ショック負荷行列
        C: (n_states,) 遷移方程式の定数項
        Z: (n_obs, n_states) 観測行列
        D: (n_obs,) 観測方程式の定数項
        combined: (n_states + n_obs, n_states + n_obs) 結合共分散
        s0: 初期状態。Noneの場合は定常平均または散漫初期化。
        P0: 初期共分散。Noneの場合はLyapunov方程式または散漫初期化。
        n_presample: 尤度から除外する先頭期間数
        config: フィルタ設定

    Returns:
        KalmanFilterResult

    Raises:
        DimensionError: 入力行列の次元が不整合な場合
        NumericalError: 予測誤差共分散が正定値でない、または状態がNaN/infになった場合
    """
    config = config or KalmanConfig()
    data = np.atleast_2d(np.asarray(data, dtype=float))
    T = np.asarray(T, dtype=float)
    R = np.asarray(R, dtype=float)
    C = np.asarray(C, dtype=float)
    Z = np.asarray(Z, dtype=float)
    D = np.asarray(D, dtype=float)
    combined = np.asarray(combined, dtype=float)
    _validate_dimensions(data, T, R, C, Z, D, combined, s0, P0, n_presample)

    T_obs, n_obs = data.shape
    n_states = T.shape[0]

    RQR = combined[:n_states, :n_states]
    G = combined[:n_states, n_states:]
    H = combined[n_states:, n_states:]

    s_init, P_init = initial_moments(T, C, RQR, config)
    s_filt = s_init if s0 is None else np.asarray(s0, dtype=float).copy()
    P_filt = P_init if P0 is None else np.asarray(P0, dtype=float).copy()

    filtered_states = np.empty((T_obs, n_states))
    filtered_covariances = np.empty((T_obs, n_states, n_states))
    prediction_errors = np.full((T_obs, n_obs), np.nan)
    period_ll = np.zeros(T_obs)

    for t in range(T_obs):
        # --- Predict ---
        s_pred = T @ s_filt + C
        P_pred = T @ P_filt @ T.T + RQR
        P_pred = 0.5 * (P_pred + P_pred.T)

        obs_t = data[t]
        valid = ~np.isnan(obs_t)
        n_valid = int(np.sum(valid))

        if n_valid == 0:
            # 全欠損: 予測のみ（尤度貢献なし）
            s_filt = s_pred
            P_filt = P_pred
        else:
            Z_t = Z[valid, :]
            D_t = D[valid]
            H_t = H[np.ix_(valid, valid)]
            G_t = G[:, valid]

            # --- Innovation ---
            v = obs_t[valid] - D_t - Z_t @ s_pred
            ZG = Z_t @ G_t
            F = Z_t @ P_pred @ Z_t.T + ZG + ZG.T + H_t
            F = 0.5 * (F + F.T)

            # --- Update ---
            s_filt, P_filt, period_ll[t] = _update_step(
                s_pred, P_pred, v, F, Z_t, G_t, config, t
            )
            prediction_errors[t, valid] = v

        P_filt = 0.5 * (P_filt + P_filt.T)

        if not np.all(np.isfinite(s_filt)) or not np.all(np.isfinite(P_filt)):
            raise NumericalError(f"フィルタ済み状態にNaN/infが発生 (t={t})")

        filtered_states[t] = s_filt
        filtered_covariances[t] = P_filt

    return KalmanFilterResult(
        log_likelihood=float(np.sum(period_ll[n_presample:])),
        filtered_states=filtered_states,
        filtered_covariances=filtered_covariances,
        prediction_errors=prediction_errors,
        period_log_likelihoods=period_ll,
    )


def initial_moments(
    T: np.ndarray, C: np.ndarray, RQR: np.ndarray, config: KalmanConfig
) -> tuple[np.ndarray, np.ndarray]:
    """初期状態と初期共分散を計算する

    定常なら s0 = (I - T)^{-1} C, P0 = T P0 T' + RQR（Lyapunov方程式）。
    非定常またはLyapunov方程式が解けない場合は散漫初期化する。
    """
    n_states = T.shape[0]
    diffuse = (np.zeros(n_states), config.diffuse_variance * np.eye(n_states))
    if n_states == 0:
        return diffuse

    spectral_radius = float(np.max(np.abs(np.linalg.eigvals(T))))
    if spectral_radius >= 1.0 - config.stationarity_margin:
        logger.debug("スペクトル半径 %.6f のため散漫初期化を使用", spectral_radius)
        return diffuse

    try:
        s0 = np.linalg.solve(np.eye(n_states) - T, C)
        P0 = scipy.linalg.solve_discrete_lyapunov(T, RQR)
    except (np.linalg.LinAlgError, ValueError) as e:
        logger.debug("Lyapunov方程式の求解に失敗したため散漫初期化を使用: %s", e)
        return diffuse
    if not (np.all(np.isfinite(s0)) and np.all(np.isfinite(P0))):
        return diffuse
    return s0, 0.5 * (P0 + P0.T)


def _update_step(
    s_pred: np.ndarray,
    P_pred: np.ndarray,
    v: np.ndarray,
    F: np.ndarray,
    Z_t: np.ndarray,
    G_t: np.ndarray,
    config: KalmanConfig,
    t: int,
) -> tuple[np.ndarray, np.ndarray, float]:
    """Kalmanフィルタの更新ステップ

    Cholesky分解を用いてKalmanゲインと尤度貢献を計算する。
    Cholesky分解が失敗した場合、Fが丸め誤差の範囲で半正定値かつ
    十分なスケールを持つときに限り、小さな正則化を加えて一度だけ再試行する。

    Raises:
        NumericalError: Fが負の固有値を持つ、または特異（ほぼゼロ）の場合

    Returns:
        (s_filt, P_filt, ll_contrib) のタプル
    """
    n_valid = v.shape[0]
    jitter = config.pd_tolerance
    try:
        CF = scipy.linalg.cho_factor(F)
    except np.linalg.LinAlgError:
        eigenvalues = np.linalg.eigvalsh(F)
        scale = float(np.max(np.abs(eigenvalues)))
        if eigenvalues[0] < -jitter or scale <= config.min_innovation_scale * jitter:
            raise NumericalError(
                f"予測誤差共分散が正定値ではありません (t={t}, 最小固有値={eigenvalues[0]:.3e})"
            ) from None
        try:
            CF = scipy.linalg.cho_factor(F + jitter * np.eye(n_valid))
        except np.linalg.LinAlgError as e:
            raise NumericalError(f"予測誤差共分散が正定値ではありません (t={t})") from e

    # Kalmanゲイン: K = (P_pred Z' + G) F^{-1}
    PZG = P_pred @ Z_t.T + G_t
    K = scipy.linalg.cho_solve(CF, PZG.T).T

    s_filt = s_pred + K @ v
    P_filt = P_pred - K @ PZG.T

    log_det_F = 2.0 * np.sum(np.log(np.diag(CF[0])))
    Finv_v = scipy.linalg.cho_solve(CF, v)
    ll_contrib = -0.5 * (n_valid * np.log(2.0 * np.pi) + log_det_F + float(v @ Finv_v))

    return s_filt, P_filt, float(ll_contrib)


def _validate_dimensions(
    data: np.ndarray,
    T: np.ndarray,
    R: np.ndarray,
    C: np.ndarray,
    Z: np.ndarray,
    D: np.ndarray,
    combined: np.ndarray,
    s0: np.ndarray | None,
    P0: np.ndarray | None,
    n_presample: int,
) -> None:
    """入力行列の次元整合性を検証する"""
    if data.ndim != 2:
        raise DimensionError(f"dataは2次元配列が必要 (got {data.ndim}D)")
    if np.any(np.isinf(data)):
        rows = sorted({int(i) for i in np.argwhere(np.isinf(data))[:, 0]})
        raise DimensionError(f"dataに無限大の値が含まれています (行 {rows[:5]})。欠損はNaNで表す")

    n_obs = data.shape[1]
    n_states = T.shape[0] if T.ndim == 2 else -1
    n_total = n_states + n_obs

    if T.ndim != 2 or T.shape != (n_states, n_states):
        raise DimensionError(f"Tは正方行列が必要 (got {T.shape})")
    if R.ndim != 2 or R.shape[0] != n_states:
        raise DimensionError(f"Rの行数は{n_states}が必要 (got {R.shape})")
    if C.shape != (n_states,):
        raise DimensionError(f"Cは({n_states},)が必要 (got {C.shape})")
    if Z.shape != (n_obs, n_states):
        raise DimensionError(f"Zは({n_obs}, {n_states})が必要 (got {Z.shape})")
    if D.shape != (n_obs,):
        raise DimensionError(f"Dは({n_obs},)が必要 (got {D.shape})")
    if combined.shape != (n_total, n_total):
        raise DimensionError(f"結合共分散は({n_total}, {n_total})が必要 (got {combined.shape})")
    if s0 is not None and np.shape(s0) != (n_states,):
        raise DimensionError(f"s0は({n_states},)が必要 (got {np.shape(s0)})")
    if P0 is not None and np.shape(P0) != (n_states, n_states):
        raise DimensionError(f"P0は({n_states}, {n_states})が必要 (got {np.shape(P0)})")
    if not 0 <= n_presample <= data.shape[0]:
        raise DimensionError(f"n_presampleは0以上{data.shape[0]}以下が必要 (got {n_presample})")
