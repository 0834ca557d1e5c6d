"""Kalmanフィルタのテスト"""

import numpy as np
import pytest
import scipy.stats

from dsge_estimator.core.exceptions import DimensionError, NumericalError
from dsge_estimator.estimation.kalman_filter import (
    KalmanConfig,
    initial_moments,
    kalman_filter,
)
from dsge_estimator.estimation.measurement import MeasurementSystem


def _ar1_system(phi: float, sigma: float) -> dict[str, np.ndarray]:
    """y_t = s_t, s_t = φ s_{t-1} + ε_t の状態空間行列"""
    return {
        "T": np.array([[phi]]),
        "R": np.array([[1.0]]),
        "C": np.zeros(1),
        "Z": np.array([[1.0]]),
        "D": np.zeros(1),
        "combined": np.array([[sigma**2, 0.0], [0.0, 0.0]]),
    }


def _simulate_ar1(phi: float, sigma: float, n: int, seed: int) -> np.ndarray:
    rng = np.random.default_rng(seed)
    y = np.zeros(n)
    y[0] = rng.normal(0.0, sigma / np.sqrt(1.0 - phi**2))
    for t in range(1, n):
        y[t] = phi * y[t - 1] + rng.normal(0.0, sigma)
    return y.reshape(-1, 1)


def _exact_ar1_log_likelihood(y: np.ndarray, phi: float, sigma: float) -> float:
    y = y[:, 0]
    ll = scipy.stats.norm(0.0, sigma / np.sqrt(1.0 - phi**2)).logpdf(y[0])
    ll += np.sum(scipy.stats.norm(phi * y[:-1], sigma).logpdf(y[1:]))
    return float(ll)


class TestKalmanFilterAR1:
    """AR(1)モデルでの厳密尤度との比較"""

    @pytest.fixture(scope="class")
    def data(self) -> np.ndarray:
        return _simulate_ar1(0.7, 0.5, 200, seed=1)

    def test_matches_exact_likelihood(self, data: np.ndarray) -> None:
        """観測が状態そのものならフィルタ尤度は厳密尤度と一致"""
        result = kalman_filter(data, **_ar1_system(0.7, 0.5))
        assert result.log_likelihood == pytest.approx(
            _exact_ar1_log_likelihood(data, 0.7, 0.5), rel=1e-8
        )

    def test_result_shapes(self, data: np.ndarray) -> None:
        result = kalman_filter(data, **_ar1_system(0.7, 0.5))
        assert result.filtered_states.shape == (200, 1)
        assert result.filtered_covariances.shape == (200, 1, 1)
        assert result.prediction_errors.shape == (200, 1)
        assert result.period_log_likelihoods.shape == (200,)

    def test_filtered_state_equals_observation(self, data: np.ndarray) -> None:
        """測定誤差がなければフィルタ済み状態は観測値"""
        result = kalman_filter(data, **_ar1_system(0.7, 0.5))
        np.testing.assert_allclose(result.filtered_states, data, atol=1e-8)

    def test_presample_excluded(self, data: np.ndarray) -> None:
        """プレサンプル期間は尤度の合計から除外される"""
        result = kalman_filter(data, **_ar1_system(0.7, 0.5), n_presample=10)
        assert result.log_likelihood == pytest.approx(
            float(np.sum(result.period_log_likelihoods[10:]))
        )
        assert result.period_log_likelihoods[0] != 0.0

    def test_likelihood_peaks_near_true_phi(self) -> None:
        """φのグリッド上で尤度は真値で最大"""
        data = _simulate_ar1(0.7, 0.5, 2000, seed=0)
        grid = [0.5, 0.6, 0.7, 0.8, 0.9]
        lls = [kalman_filter(data, **_ar1_system(phi, 0.5)).log_likelihood for phi in grid]
        assert grid[int(np.argmax(lls))] == 0.7


class TestMissingObservations:
    """欠損値の扱い"""

    def test_all_missing_period_is_predict_only(self) -> None:
        data = _simulate_ar1(0.7, 0.5, 20, seed=2)
        data[5, 0] = np.nan
        result = kalman_filter(data, **_ar1_system(0.7, 0.5))

        assert result.period_log_likelihoods[5] == 0.0
        assert np.isnan(result.prediction_errors[5, 0])
        # 予測のみなので状態は φ s_{t-1}
        assert result.filtered_states[5, 0] == pytest.approx(0.7 * data[4, 0])
        assert np.isfinite(result.log_likelihood)

    def test_partially_missing_vector(self) -> None:
        """観測ベクトルの一部が欠損しても残りで更新する"""
        system = _ar1_system(0.5, 1.0)
        system["Z"] = np.array([[1.0], [2.0]])
        system["D"] = np.zeros(2)
        system["combined"] = np.diag([1.0, 0.1, 0.1])
        data = np.array([[0.3, 0.5], [np.nan, 1.0], [np.nan, np.nan]])

        result = kalman_filter(data, **system)
        assert np.isnan(result.prediction_errors[1, 0])
        assert np.isfinite(result.prediction_errors[1, 1])
        assert result.period_log_likelihoods[2] == 0.0


class TestCrossCovariance:
    """状態ショックと観測誤差の相関"""

    @pytest.mark.parametrize("m", [0.0, 0.5, -0.3])
    def test_innovation_variance(self, m: float) -> None:
        """y_t = (1 + m) ε_t なら予測誤差分散は σ²(1+m)²"""
        sigma = 0.8
        R = np.array([[1.0]])
        ms = MeasurementSystem.build(
            Z=np.array([[1.0]]),
            D=np.zeros(1),
            Q=np.array([[sigma**2]]),
            E=np.zeros((1, 1)),
            M=np.array([[m]]),
            R=R,
        )
        data = np.array([[0.4], [-1.1], [0.7]])
        result = kalman_filter(data, np.zeros((1, 1)), R, np.zeros(1), ms.Z, ms.D, ms.combined)

        expected = scipy.stats.norm(0.0, sigma * abs(1.0 + m)).logpdf(data[:, 0])
        np.testing.assert_allclose(result.period_log_likelihoods, expected, rtol=1e-8)


class TestInitialisation:
    """初期化のテスト"""

    def test_stationary_moments(self) -> None:
        s0, P0 = initial_moments(
            np.array([[0.5]]), np.array([1.0]), np.array([[0.75]]), KalmanConfig()
        )
        assert s0[0] == pytest.approx(2.0)
        assert P0[0, 0] == pytest.approx(1.0)

    def test_diffuse_for_unit_root(self) -> None:
        config = KalmanConfig(diffuse_variance=1e4)
        s0, P0 = initial_moments(np.array([[1.0]]), np.zeros(1), np.array([[1.0]]), config)
        np.testing.assert_array_equal(s0, [0.0])
        np.testing.assert_array_equal(P0, [[1e4]])

    def test_random_walk_is_filtered(self) -> None:
        """ランダムウォークでも散漫初期化で有限の尤度を返す"""
        rng = np.random.default_rng(4)
        states = np.cumsum(rng.normal(size=50))
        data = (states + rng.normal(size=50)).reshape(-1, 1)
        result = kalman_filter(
            data,
            np.array([[1.0]]),
            np.array([[1.0]]),
            np.zeros(1),
            np.array([[1.0]]),
            np.zeros(1),
            np.eye(2),
        )
        assert np.isfinite(result.log_likelihood)
        assert result.filtered_covariances[-1, 0, 0] < 1.0

    def test_explicit_initial_state(self) -> None:
        data = np.array([[1.0]])
        result = kalman_filter(
            data, **_ar1_system(0.0, 1.0), s0=np.array([5.0]), P0=np.zeros((1, 1))
        )
        # T=0 なので予測は初期状態に依存しない
        assert result.prediction_errors[0, 0] == pytest.approx(1.0)


class TestKalmanErrors:
    """エラー処理のテスト"""

    def test_non_positive_definite_innovation(self) -> None:
        """予測誤差共分散が負なら NumericalError"""
        system = _ar1_system(0.0, 1.0)
        system["combined"] = np.array([[1.0, 0.0], [0.0, -3.0]])
        with pytest.raises(NumericalError):
            kalman_filter(np.array([[0.1]]), **system)

    def test_singular_innovation(self) -> None:
        """観測が状態に依存せず誤差もない（F=0）なら正則化せず NumericalError"""
        system = _ar1_system(0.5, 1.0)
        system["Z"] = np.zeros((1, 1))
        system["combined"] = np.diag([1.0, 0.0])
        with pytest.raises(NumericalError):
            kalman_filter(np.zeros((50, 1)), **system)

    def test_rank_deficient_innovation_regularized(self) -> None:
        """スケールのある半正定値F（同一観測の重複）は正則化して続行する"""
        system = _ar1_system(0.0, 1.0)
        system["Z"] = np.array([[1.0], [1.0]])
        system["D"] = np.zeros(2)
        system["combined"] = np.diag([1.0, 0.0, 0.0])
        result = kalman_filter(np.array([[0.1, 0.1]]), **system)
        assert np.isfinite(result.log_likelihood)

    def test_infinite_observation_rejected(self) -> None:
        system = _ar1_system(0.5, 1.0)
        data = np.zeros((5, 1))
        data[2, 0] = np.inf
        with pytest.raises(DimensionError):
            kalman_filter(data, **system)

    def test_observation_matrix_shape(self) -> None:
        system = _ar1_system(0.5, 1.0)
        system["Z"] = np.ones((1, 2))
        with pytest.raises(DimensionError):
            kalman_filter(np.zeros((3, 1)), **system)

    def test_combined_shape(self) -> None:
        system = _ar1_system(0.5, 1.0)
        system["combined"] = np.eye(3)
        with pytest.raises(DimensionError):
            kalman_filter(np.zeros((3, 1)), **system)

    def test_presample_too_long(self) -> None:
        with pytest.raises(DimensionError):
            kalman_filter(np.zeros((3, 1)), **_ar1_system(0.5, 1.0), n_presample=4)
