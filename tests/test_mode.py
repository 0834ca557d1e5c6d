"""事後モード探索のテスト"""

import numpy as np
import pytest

from dsge_estimator.core.exceptions import NumericalError, OptimizationError
from dsge_estimator.estimation.measurement import MeasurementSystem
from dsge_estimator.estimation.mode import ModeSearchConfig, compute_hessian, find_mode
from dsge_estimator.estimation.simulation import simulate
from dsge_estimator.models import MA1Model
from dsge_estimator.parameters import (
    DistributionType,
    Parameter,
    ParameterPrior,
    ParameterRegistry,
)


class _UnusedParameterModel(MA1Model):
    """どこにも使われない事前分布なしのパラメータを持つモデル"""

    def __init__(self) -> None:
        super().__init__()
        self.parameters = ParameterRegistry([*self.parameters, Parameter("unused", 0.0)])


class _NegativeNoiseModel(MA1Model):
    """測定誤差分散が負になるモデル"""

    def measurement(self, T, R, C, *, with_shocks=True):  # type: ignore[no-untyped-def]
        ms = super().measurement(T, R, C, with_shocks=with_shocks)
        return MeasurementSystem.build(ms.Z, ms.D, ms.Q, np.array([[-10.0]]), ms.M, R)


class TestComputeHessian:
    """数値ヘシアンのテスト"""

    def test_quadratic(self) -> None:
        A = np.array([[2.0, 0.5], [0.5, 1.0]])
        H = compute_hessian(lambda x: 0.5 * float(x @ A @ x), np.array([0.3, -1.2]))
        np.testing.assert_allclose(H, A, atol=1e-5)

    def test_symmetric(self) -> None:
        H = compute_hessian(lambda x: float(np.sum(np.exp(x)) + x[0] * x[1]), np.zeros(2))
        np.testing.assert_allclose(H, H.T)
        np.testing.assert_allclose(H, [[1.0, 1.0], [1.0, 1.0]], atol=1e-4)

    def test_step_shrinks_near_bound(self) -> None:
        """境界近傍のモードでも評価点が台の外に出ない"""

        def f(x: np.ndarray) -> float:
            if not np.all((0.0 < x) & (x < 1.0)):
                return np.inf
            return 0.5 * float(x @ x)

        x = np.array([0.99999, 0.5])
        bounds = np.array([[0.0, 1.0], [0.0, 1.0]])
        assert not np.all(np.isfinite(compute_hessian(f, x, step=1e-3)))
        H = compute_hessian(f, x, step=1e-3, bounds=bounds)
        np.testing.assert_allclose(H, np.eye(2), atol=1e-3)

    def test_point_on_bound(self) -> None:
        with pytest.raises(OptimizationError):
            compute_hessian(lambda x: 0.0, np.array([1.0]), bounds=np.array([[0.0, 1.0]]))


class TestFindMode:
    """MA(1)モデルでのモード探索"""

    @pytest.fixture(scope="class")
    def data(self) -> np.ndarray:
        truth = MA1Model(mu=0.75, beta=0.9, sigma=0.25)
        return simulate(truth, 1000, rng=np.random.default_rng(42)).values

    @pytest.fixture(scope="class")
    def fitted(self, data: np.ndarray) -> tuple[MA1Model, np.ndarray, np.ndarray]:
        model = MA1Model(mu=0.7, beta=0.8, sigma=0.3)
        mode, hessian = find_mode(model, data)
        return model, mode, hessian

    def test_recovers_true_parameters(
        self, fitted: tuple[MA1Model, np.ndarray, np.ndarray]
    ) -> None:
        _, mode, _ = fitted
        assert mode[0] == pytest.approx(0.75, abs=0.05)
        assert mode[1] == pytest.approx(0.9, abs=0.1)
        assert mode[2] == pytest.approx(0.25, abs=0.05)

    def test_hessian_positive_definite(
        self, fitted: tuple[MA1Model, np.ndarray, np.ndarray]
    ) -> None:
        _, _, hessian = fitted
        assert hessian.shape == (3, 3)
        np.testing.assert_allclose(hessian, hessian.T)
        assert np.all(np.linalg.eigvalsh(hessian) > 0.0)

    def test_registry_set_to_mode(
        self, fitted: tuple[MA1Model, np.ndarray, np.ndarray]
    ) -> None:
        model, mode, _ = fitted
        np.testing.assert_allclose(model.parameters.free_values(), mode)

    def test_fixed_parameter_held_constant(self, data: np.ndarray) -> None:
        """固定パラメータは探索対象にならない"""
        model = MA1Model(mu=0.75, beta=0.8, sigma=0.3, fix_mu=True)
        mode, hessian = find_mode(model, data)
        assert mode.shape == (2,)
        assert hessian.shape == (2, 2)
        assert model["mu"] == 0.75


class TestFindModeFailures:
    """モード探索の失敗"""

    @pytest.fixture(scope="class")
    def data(self) -> np.ndarray:
        return simulate(MA1Model(), 100, rng=np.random.default_rng(0)).values

    def test_non_finite_start(self, data: np.ndarray) -> None:
        """初期値の事前確率がゼロなら失敗"""
        model = MA1Model(beta=0.9)
        model = model.with_parameters(
            model.parameters.replace(
                "beta", prior=ParameterPrior("beta", DistributionType.UNIFORM, -0.5, 0.1)
            )
        )
        with pytest.raises(OptimizationError):
            find_mode(model, data)

    def test_iteration_limit(self, data: np.ndarray) -> None:
        model = MA1Model(mu=0.0, beta=0.0, sigma=1.0)
        with pytest.raises(OptimizationError):
            find_mode(model, data, ModeSearchConfig(max_iterations=1))


    def test_flat_direction_hessian(self, data: np.ndarray) -> None:
        """尤度にも事前分布にも現れないパラメータではヘシアンが正定値にならない"""
        model = _UnusedParameterModel()
        with pytest.raises(OptimizationError, match="正定値"):
            find_mode(model, data)
        assert model["unused"] == 0.0

    def test_numerical_error_is_fatal(self, data: np.ndarray) -> None:
        """探索中の数値エラーは OptimizationError として θ を添えて報告される"""
        with pytest.raises(OptimizationError) as exc_info:
            find_mode(_NegativeNoiseModel(), data)
        assert isinstance(exc_info.value.__cause__, NumericalError)
        assert any(note.startswith("theta = ") for note in exc_info.value.__notes__)
