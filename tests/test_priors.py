"""事前分布のテスト"""

import numpy as np
import pytest
import scipy.stats

from dsge_estimator.core.exceptions import ParameterValidationError
from dsge_estimator.parameters import DistributionType, ParameterPrior


class TestParameterPrior:
    """ParameterPrior のテスト"""

    @pytest.mark.parametrize(
        "dist_type,mean,std",
        [
            (DistributionType.BETA, 0.7, 0.1),
            (DistributionType.GAMMA, 2.0, 0.5),
            (DistributionType.NORMAL, 0.5, 1.0),
            (DistributionType.INV_GAMMA, 0.5, 0.5),
            (DistributionType.UNIFORM, 0.0, 1.0),
        ],
    )
    def test_moment_matching(self, dist_type: DistributionType, mean: float, std: float) -> None:
        """平均・標準偏差が指定どおりになる"""
        prior = ParameterPrior("p", dist_type, mean, std)
        dist = prior.distribution
        assert dist.mean() == pytest.approx(mean, rel=1e-6, abs=1e-10)
        assert dist.std() == pytest.approx(std, rel=1e-6)

    def test_normal_log_pdf(self) -> None:
        """正規分布の対数密度がscipyと一致する"""
        prior = ParameterPrior("mu", DistributionType.NORMAL, 0.5, 1.0)
        assert prior.log_pdf(0.2) == pytest.approx(scipy.stats.norm(0.5, 1.0).logpdf(0.2))

    def test_outside_support_is_minus_inf(self) -> None:
        """台の外では -inf"""
        prior = ParameterPrior("rho", DistributionType.BETA, 0.5, 0.2)
        assert prior.log_pdf(1.5) == -np.inf
        assert prior.log_pdf(-0.1) == -np.inf

    def test_truncation_bounds(self) -> None:
        """切断範囲の外では -inf"""
        prior = ParameterPrior(
            "beta", DistributionType.NORMAL, 0.5, 0.5, lower_bound=-1.0, upper_bound=1.0
        )
        assert prior.log_pdf(1.0) == -np.inf
        assert prior.log_pdf(-1.2) == -np.inf
        assert np.isfinite(prior.log_pdf(0.9))

    def test_samples_respect_bounds(self) -> None:
        """サンプルは切断範囲内に収まる"""
        prior = ParameterPrior(
            "beta", DistributionType.NORMAL, 0.5, 5.0, lower_bound=-1.0, upper_bound=1.0
        )
        draws = prior.sample(np.random.default_rng(0), size=500)
        assert draws.shape == (500,)
        assert np.all(draws > -1.0)
        assert np.all(draws < 1.0)

    def test_sample_is_reproducible(self) -> None:
        """同じシードで同じサンプル"""
        prior = ParameterPrior("s", DistributionType.INV_GAMMA, 0.5, 0.5)
        a = prior.sample(np.random.default_rng(3), size=10)
        b = prior.sample(np.random.default_rng(3), size=10)
        np.testing.assert_array_equal(a, b)

    def test_invalid_std(self) -> None:
        with pytest.raises(ParameterValidationError):
            ParameterPrior("p", DistributionType.NORMAL, 0.0, 0.0)

    def test_invalid_beta_mean(self) -> None:
        with pytest.raises(ParameterValidationError):
            ParameterPrior("p", DistributionType.BETA, 1.2, 0.1)

    def test_truncated_sampling_is_not_clipped(self) -> None:
        """切断正規分布の平均は sqrt(2/π)（端点に質量が集中しない）"""
        prior = ParameterPrior("p", DistributionType.NORMAL, 0.0, 1.0, lower_bound=0.0)
        draws = prior.sample(np.random.default_rng(1), size=20_000)
        assert np.all(draws > 0.0)
        assert draws.mean() == pytest.approx(np.sqrt(2.0 / np.pi), abs=0.02)
        assert np.mean(draws < 1e-6) < 0.001

    def test_support(self) -> None:
        prior = ParameterPrior("p", DistributionType.GAMMA, 1.0, 0.5, upper_bound=3.0)
        assert prior.support == (0.0, 3.0)

    def test_invalid_beta_variance(self) -> None:
        with pytest.raises(ParameterValidationError):
            ParameterPrior("p", DistributionType.BETA, 0.5, 0.5)
