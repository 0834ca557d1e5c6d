"""ベイズ推定結果

事後ドローの集約、事後分布のサマリー、周辺尤度の近似計算を提供する。
"""

import logging
from dataclasses import dataclass

import numpy as np

from dsge_estimator.core.exceptions import ValidationError
from dsge_estimator.estimation.diagnostics import ConvergenceDiagnostics, run_diagnostics
from dsge_estimator.estimation.draws import DrawCollection
from dsge_estimator.parameters.registry import ParameterRegistry

__all__ = [
    "EstimationResult",
    "PosteriorSummary",
    "build_estimation_result",
    "compute_hpd",
    "compute_marginal_likelihood_laplace",
]

logger = logging.getLogger(__name__)


@dataclass
class PosteriorSummary:
    """単一パラメータの事後分布サマリー

    Attributes:
        name: パラメータ名
        mean: 事後平均
        median: 事後中央値
        std: 事後標準偏差
        hpd_lower: 90% HPD下限
        hpd_upper: 90% HPD上限
        prior_mean: 事前平均（事前分布がない場合はNaN）
        prior_std: 事前標準偏差（事前分布がない場合はNaN）
        fixed: 固定パラメータか
    """

    name: str
    mean: float
    median: float
    std: float
    hpd_lower: float
    hpd_upper: float
    prior_mean: float
    prior_std: float
    fixed: bool = False


@dataclass
class EstimationResult:
    """推定結果

    Attributes:
        draws: 事後ドロー（全パラメータ）
        mode: 事後モード（自由パラメータ）
        mode_log_posterior: モードでの対数事後確率
        hessian: モードでのヘシアン
        log_marginal_likelihood: Laplace近似による対数周辺尤度
        diagnostics: 収束診断結果
        summaries: パラメータごとの事後分布サマリー
        n_presample: 尤度から除外したプレサンプル期間数
        tag: ドローの保存タグ
    """

    draws: DrawCollection
    mode: np.ndarray
    mode_log_posterior: float
    hessian: np.ndarray
    log_marginal_likelihood: float
    diagnostics: ConvergenceDiagnostics
    summaries: list[PosteriorSummary]
    n_presample: int = 0
    tag: str | None = None

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return self.draws.parameter_names

    def get_summary(self, name: str) -> PosteriorSummary:
        """名前でパラメータサマリーを取得する

        Raises:
            ValidationError: パラメータが見つからない場合
        """
        for s in self.summaries:
            if s.name == name:
                return s
        raise ValidationError(f"パラメータ '{name}' が見つかりません")

    def summary_table(self) -> str:
        """マークダウン形式のサマリーテーブルを生成する"""
        header = (
            "| Parameter | Prior Mean | Prior Std | Post. Mean | Post. Std "
            "| 90% HPD Lower | 90% HPD Upper |"
        )
        separator = "|---|---:|---:|---:|---:|---:|---:|"

        rows = [header, separator]
        for s in self.summaries:
            name = f"{s.name} (fixed)" if s.fixed else s.name
            rows.append(
                f"| {name} "
                f"| {s.prior_mean:.4f} "
                f"| {s.prior_std:.4f} "
                f"| {s.mean:.4f} "
                f"| {s.std:.4f} "
                f"| {s.hpd_lower:.4f} "
                f"| {s.hpd_upper:.4f} |"
            )
        return "\n".join(rows)


def compute_hpd(samples: np.ndarray, alpha: float = 0.1) -> tuple[float, float]:
    """Highest Posterior Density (HPD) 区間を計算する

    (1-alpha)*100% の確率質量を含む最短の区間を求める。
    """
    sorted_samples = np.sort(np.asarray(samples, dtype=float))
    n = len(sorted_samples)
    if n == 0:
        raise ValidationError("HPD区間を計算するサンプルがありません")
    if n == 1:
        return float(sorted_samples[0]), float(sorted_samples[0])
    interval_size = min(max(int(np.ceil((1.0 - alpha) * n)), 2), n)

    widths = sorted_samples[interval_size - 1 :] - sorted_samples[: n - interval_size + 1]
    best = int(np.argmin(widths))
    return float(sorted_samples[best]), float(sorted_samples[best + interval_size - 1])


def compute_marginal_likelihood_laplace(
    mode_log_posterior: float,
    hessian: np.ndarray,
) -> float:
    """Laplace近似による対数周辺尤度

    log p(y) ≈ log p(θ*|y) + (d/2) log(2π) - 0.5 log|H|

    θ* はモード、H はモードでの負の対数事後確率のヘシアン。
    """
    d = hessian.shape[0]
    sign, log_det = np.linalg.slogdet(hessian)
    if sign <= 0:
        logger.warning("ヘシアンが正定値でないため対角要素で行列式を近似します")
        log_det = float(np.sum(np.log(np.maximum(np.diag(hessian), 1e-10))))
    return float(mode_log_posterior + 0.5 * d * np.log(2.0 * np.pi) - 0.5 * log_det)


def build_estimation_result(
    draws: DrawCollection,
    mode: np.ndarray,
    mode_log_posterior: float,
    hessian: np.ndarray,
    registry: ParameterRegistry,
    *,
    n_presample: int = 0,
    tag: str | None = None,
) -> EstimationResult:
    """事後ドローから EstimationResult を構築する"""
    diagnostics = run_diagnostics(draws)
    log_ml = compute_marginal_likelihood_laplace(mode_log_posterior, hessian)

    summaries: list[PosteriorSummary] = []
    for name in draws.parameter_names:
        samples = draws.column(name)
        parameter = registry.get(name)
        prior = parameter.prior
        hpd_lower, hpd_upper = compute_hpd(samples, alpha=0.1)
        summaries.append(
            PosteriorSummary(
                name=name,
                mean=float(np.mean(samples)),
                median=float(np.median(samples)),
                std=float(np.std(samples)),
                hpd_lower=hpd_lower,
                hpd_upper=hpd_upper,
                prior_mean=prior.mean if prior is not None else float("nan"),
                prior_std=prior.std if prior is not None else float("nan"),
                fixed=parameter.fixed,
            )
        )

    return EstimationResult(
        draws=draws,
        mode=mode,
        mode_log_posterior=mode_log_posterior,
        hessian=hessian,
        log_marginal_likelihood=log_ml,
        diagnostics=diagnostics,
        summaries=summaries,
        n_presample=n_presample,
        tag=tag,
    )
