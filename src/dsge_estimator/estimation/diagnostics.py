"""MCMC収束診断

Gelman-Rubin R-hat, 有効サンプルサイズ (ESS), Geweke検定を DrawCollection に対して計算する。
"""

from dataclasses import dataclass

import numpy as np
import scipy.stats

from dsge_estimator.core.exceptions import ValidationError
from dsge_estimator.estimation.draws import DrawCollection

__all__ = [
    "ConvergenceDiagnostics",
    "compute_ess",
    "compute_rhat",
    "geweke_test",
    "run_diagnostics",
]

RHAT_THRESHOLD = 1.1


@dataclass
class ConvergenceDiagnostics:
    """MCMC収束診断結果

    Attributes:
        parameter_names: パラメータ名
        r_hat: Gelman-Rubin R-hat (n_params,)。単一チェーンではNaN。
        ess: 有効サンプルサイズ (n_params,)
        geweke_z: Geweke z値 (n_params,)
        geweke_p: Geweke p値 (n_params,)
        acceptance_rates: ブロック別受容率 (n_chains, n_blocks)
        converged: 全パラメータで R-hat < 1.1 か（単一チェーンではGeweke p > 0.05）
    """

    parameter_names: tuple[str, ...]
    r_hat: np.ndarray
    ess: np.ndarray
    geweke_z: np.ndarray
    geweke_p: np.ndarray
    acceptance_rates: np.ndarray
    converged: bool


def compute_rhat(chains: np.ndarray) -> np.ndarray:
    """Gelman-Rubin R-hat統計量を計算する

    Args:
        chains: (n_chains, n_draws, n_params)

    Returns:
        R-hat値 (n_params,)。チェーンが1本ならNaN。

    Formula:
        W = チェーン内分散の平均
        B = チェーン平均の分散 * n_draws
        V_hat = (1 - 1/n) * W + (1/n) * B
        R_hat = sqrt(V_hat / W)
    """
    n_chains, n_draws, n_params = chains.shape
    if n_chains < 2 or n_draws < 2:
        return np.full(n_params, np.nan)

    w = chains.var(axis=1, ddof=1).mean(axis=0)
    b = chains.mean(axis=1).var(axis=0, ddof=1) * n_draws
    v_hat = (1.0 - 1.0 / n_draws) * w + b / n_draws
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(w > 0, np.sqrt(v_hat / w), 1.0)


def _autocorrelation(x: np.ndarray) -> np.ndarray:
    """FFTによる自己相関関数（ラグ0で1）"""
    n = x.shape[0]
    centered = x - x.mean()
    size = 1 << (2 * n - 1).bit_length()
    spectrum = np.fft.rfft(centered, n=size)
    acov = np.fft.irfft(spectrum * np.conj(spectrum), n=size)[:n]
    return acov / acov[0]


def compute_ess(chains: np.ndarray) -> np.ndarray:
    """自己相関に基づく有効サンプルサイズを計算する

    チェーンごとの自己相関を平均し、隣接ラグの和が正である間だけ足し合わせる
    （Geyerの初期正系列）。

    Args:
        chains: (n_chains, n_draws, n_params)

    Returns:
        ESS値 (n_params,)
    """
    n_chains, n_draws, n_params = chains.shape
    n_total = n_chains * n_draws
    ess = np.full(n_params, float(n_total))
    if n_draws < 3:
        return ess

    for p in range(n_params):
        series = chains[:, :, p]
        if np.all(series.var(axis=1) < 1e-30):
            continue
        rho = np.mean(
            [_autocorrelation(s) for s in series if s.var() >= 1e-30], axis=0
        )
        tau = -1.0
        for lag in range(0, n_draws - 1, 2):
            pair = rho[lag] + rho[lag + 1]
            if pair < 0.0:
                break
            tau += 2.0 * pair
        ess[p] = n_total / max(tau, 1.0 / n_total)
    return np.minimum(ess, float(n_total) * np.log10(max(n_total, 10)))


def geweke_test(
    draws: np.ndarray,
    first_frac: float = 0.1,
    last_frac: float = 0.5,
) -> tuple[np.ndarray, np.ndarray]:
    """Geweke収束診断

    系列の最初 first_frac と最後 last_frac の平均を比較する。
    収束していれば z値は標準正規分布に従う。

    Args:
        draws: (n_draws, n_params)
        first_frac: 前半ウィンドウの割合
        last_frac: 後半ウィンドウの割合

    Returns:
        (z_scores, p_values) 各 (n_params,)
    """
    if draws.ndim == 1:
        draws = draws[:, np.newaxis]
    if first_frac + last_frac > 1.0:
        raise ValidationError("first_frac + last_frac は1以下が必要です")
    n_draws = draws.shape[0]
    n_first = max(int(n_draws * first_frac), 2)
    n_last = max(int(n_draws * last_frac), 2)
    if n_draws < n_first + n_last:
        nan = np.full(draws.shape[1], np.nan)
        return nan, nan.copy()

    first = draws[:n_first]
    last = draws[-n_last:]
    se = np.sqrt(first.var(axis=0, ddof=1) / n_first + last.var(axis=0, ddof=1) / n_last)
    with np.errstate(divide="ignore", invalid="ignore"):
        z = np.where(se > 0, (first.mean(axis=0) - last.mean(axis=0)) / se, 0.0)
    p = 2.0 * scipy.stats.norm.sf(np.abs(z))
    return z, p


def run_diagnostics(collection: DrawCollection) -> ConvergenceDiagnostics:
    """全ての収束診断を実行する

    固定パラメータのように分散ゼロの列は R-hat=1, ESS=ドロー数 となる。
    """
    chains = collection.stacked()
    if chains.size == 0:
        raise ValidationError("診断するドローがありません")

    r_hat = compute_rhat(chains)
    ess = compute_ess(chains)
    geweke_z, geweke_p = geweke_test(collection.draws)

    if chains.shape[0] >= 2:
        converged = bool(np.all(r_hat < RHAT_THRESHOLD))
    else:
        converged = bool(np.all(np.nan_to_num(geweke_p, nan=1.0) > 0.05))

    return ConvergenceDiagnostics(
        parameter_names=collection.parameter_names,
        r_hat=r_hat,
        ess=ess,
        geweke_z=geweke_z,
        geweke_p=geweke_p,
        acceptance_rates=collection.acceptance_rates,
        converged=converged,
    )
