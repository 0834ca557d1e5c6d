"""ベイズ推定の事前分布

事前分布は平均・標準偏差で指定し、scipy.stats の分布パラメータへはモーメント一致で変換する。
切断範囲を指定した場合、密度は範囲内で正規化せずに評価し（事後分布の形状には影響しない）、
サンプルは逆累積分布関数による切断分布から生成する。
"""

from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from typing import Any

import numpy as np
import scipy.stats

from dsge_estimator.core.exceptions import ParameterValidationError


class DistributionType(Enum):
    """事前分布の種類"""

    BETA = "beta"
    GAMMA = "gamma"
    NORMAL = "normal"
    INV_GAMMA = "inv_gamma"
    UNIFORM = "uniform"


def _moment_matched(dist_type: DistributionType, mean: float, std: float) -> Any:
    """平均・標準偏差が一致する scipy frozen 分布"""
    variance = std**2
    match dist_type:
        case DistributionType.BETA:
            concentration = mean * (1.0 - mean) / variance - 1.0
            return scipy.stats.beta(mean * concentration, (1.0 - mean) * concentration)
        case DistributionType.GAMMA:
            return scipy.stats.gamma(mean**2 / variance, scale=variance / mean)
        case DistributionType.NORMAL:
            return scipy.stats.norm(loc=mean, scale=std)
        case DistributionType.INV_GAMMA:
            # 形状 a > 2 で分散が有限: mean = s/(a-1), var = mean²/(a-2)
            a = mean**2 / variance + 2.0
            return scipy.stats.invgamma(a, scale=mean * (a - 1.0))
        case DistributionType.UNIFORM:
            half_width = np.sqrt(3.0) * std
            return scipy.stats.uniform(loc=mean - half_width, scale=2.0 * half_width)


@dataclass(frozen=True)
class ParameterPrior:
    """単一パラメータの事前分布

    Attributes:
        name: パラメータ名
        dist_type: 分布の種類
        mean: 事前分布の平均（切断前）
        std: 事前分布の標準偏差（切断前）
        lower_bound: 切断下限（開区間）
        upper_bound: 切断上限（開区間）
    """

    name: str
    dist_type: DistributionType
    mean: float
    std: float
    lower_bound: float = -np.inf
    upper_bound: float = np.inf

    def __post_init__(self) -> None:
        if not self.std > 0.0:
            raise ParameterValidationError(f"{self.name}: 事前標準偏差は正である必要があります")
        if self.lower_bound >= self.upper_bound:
            raise ParameterValidationError(
                f"{self.name}: 切断下限 {self.lower_bound} が上限 {self.upper_bound} 以上です"
            )
        if self.dist_type is DistributionType.BETA:
            if not 0.0 < self.mean < 1.0:
                raise ParameterValidationError(
                    f"{self.name}: Beta分布の平均は(0, 1)内である必要があります"
                )
            if self.std**2 >= self.mean * (1.0 - self.mean):
                raise ParameterValidationError(
                    f"{self.name}: Beta分布の分散は mean(1-mean) 未満である必要があります"
                )
        if (
            self.dist_type in (DistributionType.GAMMA, DistributionType.INV_GAMMA)
            and self.mean <= 0.0
        ):
            raise ParameterValidationError(f"{self.name}: 平均は正である必要があります")

    @cached_property
    def distribution(self) -> Any:
        """切断前の scipy frozen 分布"""
        return _moment_matched(self.dist_type, self.mean, self.std)

    @property
    def support(self) -> tuple[float, float]:
        """分布の台と切断範囲の共通部分"""
        lo, hi = self.distribution.support()
        return max(float(lo), self.lower_bound), min(float(hi), self.upper_bound)

    def log_pdf(self, value: float) -> float:
        """対数確率密度（切断範囲外・台の外では -inf）"""
        if not self.lower_bound < value < self.upper_bound:
            return -np.inf
        lp = float(self.distribution.logpdf(value))
        return lp if np.isfinite(lp) else -np.inf

    def sample(self, rng: np.random.Generator, size: int = 1) -> np.ndarray:
        """切断分布からサンプルを生成する

        Args:
            rng: NumPy乱数生成器
            size: サンプル数

        Returns:
            サンプル配列 (size,)
        """
        dist = self.distribution
        if np.isinf(self.lower_bound) and np.isinf(self.upper_bound):
            return np.asarray(dist.rvs(size=size, random_state=rng), dtype=np.float64)

        p_lo = float(dist.cdf(self.lower_bound))
        p_hi = float(dist.cdf(self.upper_bound))
        if not p_hi > p_lo:
            raise ParameterValidationError(f"{self.name}: 切断範囲に確率質量がありません")
        draws = np.asarray(dist.ppf(rng.uniform(p_lo, p_hi, size=size)), dtype=np.float64)
        # 端点の丸め誤差で開区間から外れないようにする
        eps = 1e-12 * max(1.0, float(np.max(np.abs(draws))) if draws.size else 1.0)
        return np.clip(draws, self.lower_bound + eps, self.upper_bound - eps)
