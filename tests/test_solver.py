"""gensysソルバーのテスト"""

import dataclasses

import numpy as np
import pytest

from dsge_estimator.core.exceptions import (
    DimensionError,
    IndeterminacyError,
    NoStableSolutionError,
    SolutionError,
)
from dsge_estimator.core.solver import GensysSolver, SolverConfig, solve
from dsge_estimator.models import MA1Model, PresentValueModel
from dsge_estimator.parameters.constants import SOLVER_CONSTANTS, SolverConstants


def _solve_model(model):
    system = model.equilibrium_conditions()
    return GensysSolver(system.gamma0, system.gamma1, system.c, system.psi, system.pi)


def _residual_outside_span(pi: np.ndarray, residual: np.ndarray) -> np.ndarray:
    """残差から Π の列空間成分を除いたもの"""
    if pi.shape[1] == 0:
        return residual
    return residual - pi @ np.linalg.pinv(pi) @ residual


class TestMA1Solution:
    """MA(1)モデルの既知解テスト"""

    def test_transition_matrices(self) -> None:
        """T=[[0,0],[1,0]], R=[[1],[0]]"""
        system = MA1Model().equilibrium_conditions()
        T, R, C = solve(system.gamma0, system.gamma1, system.c, system.psi, system.pi)

        np.testing.assert_allclose(T, [[0.0, 0.0], [1.0, 0.0]], atol=1e-10)
        np.testing.assert_allclose(R, [[1.0], [0.0]], atol=1e-10)
        np.testing.assert_allclose(C, [0.0, 0.0], atol=1e-10)

    def test_all_roots_stable(self) -> None:
        """期待誤差なしで不安定根がない"""
        result = _solve_model(MA1Model()).solve()
        assert result.n_unstable == 0
        assert result.n_stable == 2
        assert result.n_boundary == 0

    def test_equations_hold_exactly(self) -> None:
        """Πが空の場合 Γ0 T = Γ1, Γ0 R = Ψ"""
        system = MA1Model().equilibrium_conditions()
        T, R, _ = solve(system.gamma0, system.gamma1, system.c, system.psi, system.pi)
        np.testing.assert_allclose(system.gamma0 @ T, system.gamma1, atol=1e-10)
        np.testing.assert_allclose(system.gamma0 @ R, system.psi, atol=1e-10)


class TestForwardLookingSolution:
    """期待誤差を持つ現在価値モデルのテスト"""

    def test_closed_form_solution(self) -> None:
        """x_t = z_t / (1 - βρ) に一致"""
        beta, rho = 0.95, 0.8
        model = PresentValueModel(beta=beta, rho=rho)
        result = _solve_model(model).solve()
        k = 1.0 / (1.0 - beta * rho)

        expected_T = np.array(
            [
                [0.0, rho * k, 0.0],
                [0.0, rho, 0.0],
                [0.0, rho**2 * k, 0.0],
            ]
        )
        expected_R = np.array([[k], [1.0], [rho * k]])
        np.testing.assert_allclose(result.T, expected_T, atol=1e-8)
        np.testing.assert_allclose(result.R, expected_R, atol=1e-8)
        assert result.n_unstable == 1

    @pytest.mark.parametrize("beta,rho", [(0.95, 0.8), (0.5, 0.3), (0.99, 0.95)])
    def test_residual_lies_in_span_of_pi(self, beta: float, rho: float) -> None:
        """Γ0 T - Γ1 と Γ0 R - Ψ が Π の列空間に含まれる"""
        system = PresentValueModel(beta=beta, rho=rho).equilibrium_conditions()
        T, R, _ = solve(system.gamma0, system.gamma1, system.c, system.psi, system.pi)

        res_T = _residual_outside_span(system.pi, system.gamma0 @ T - system.gamma1)
        res_R = _residual_outside_span(system.pi, system.gamma0 @ R - system.psi)
        np.testing.assert_allclose(res_T, 0.0, atol=1e-8)
        np.testing.assert_allclose(res_R, 0.0, atol=1e-8)

    def test_solution_is_stable(self) -> None:
        """Tのスペクトル半径が1未満"""
        result = _solve_model(PresentValueModel()).solve()
        assert np.max(np.abs(np.linalg.eigvals(result.T))) < 1.0

    def test_constant_term_with_unstable_block(self) -> None:
        """定数項がある場合 C' は定常平均を与える"""
        system = PresentValueModel(beta=0.9, rho=0.5).equilibrium_conditions()
        c = np.zeros(3)
        c[1] = 0.5  # z_t = 0.5 + ρ z_{t-1} + ε_t
        T, _, C = solve(system.gamma0, system.gamma1, c, system.psi, system.pi)

        mean = np.linalg.solve(np.eye(3) - T, C)
        z_mean = 0.5 / (1.0 - 0.5)
        assert mean[1] == pytest.approx(z_mean, abs=1e-8)
        assert mean[0] == pytest.approx(z_mean / (1.0 - 0.9), abs=1e-8)


class TestSolutionFailures:
    """解が存在しない・一意でない場合のテスト"""

    def test_indeterminacy(self) -> None:
        """β > 1 では不安定根が不足し不決定"""
        model = PresentValueModel(beta=1.05)
        with pytest.raises(IndeterminacyError):
            _solve_model(model).solve()

    def test_no_stable_solution(self) -> None:
        """期待誤差なしの爆発的過程は安定解なし"""
        with pytest.raises(NoStableSolutionError):
            solve(
                np.eye(1),
                np.array([[2.0]]),
                np.zeros(1),
                np.ones((1, 1)),
                np.zeros((1, 0)),
            )

    def test_failures_share_base_class(self) -> None:
        """両方の失敗はSolutionErrorとして捕捉できる"""
        assert issubclass(NoStableSolutionError, SolutionError)
        assert issubclass(IndeterminacyError, SolutionError)

    def test_coincident_zero_roots(self) -> None:
        """Γ0, Γ1 が同じ行でゼロなら解けない"""
        with pytest.raises(SolutionError):
            solve(
                np.array([[1.0, 0.0], [0.0, 0.0]]),
                np.array([[0.5, 0.0], [0.0, 0.0]]),
                np.zeros(2),
                np.array([[1.0], [0.0]]),
                np.zeros((2, 0)),
            )


class TestUnitRootBoundary:
    """単位円境界上の根のテスト"""

    def test_boundary_root_is_reported(self) -> None:
        """β=1 の根 1/β は境界根として不安定側に数えて警告"""
        solver = _solve_model(PresentValueModel(beta=1.0))
        with pytest.warns(RuntimeWarning):
            result = solver.solve(emit_warnings=True)
        assert result.n_boundary == 1
        assert result.n_unstable == 1

    def test_tolerance_is_configurable(self) -> None:
        """許容幅を広げると 1 に近い根も境界根として数える"""
        system = PresentValueModel(beta=0.9995, rho=0.5).equilibrium_conditions()
        solver = GensysSolver(
            system.gamma0,
            system.gamma1,
            system.c,
            system.psi,
            system.pi,
            config=SolverConfig(unit_root_tolerance=1e-3),
        )
        result = solver.solve()
        assert result.n_boundary == 1


class TestDimensionValidation:
    """次元検証のテスト"""

    def test_non_square_gamma0(self) -> None:
        with pytest.raises(DimensionError):
            solve(np.ones((2, 3)), np.ones((2, 3)), np.zeros(2), np.ones((2, 1)), np.zeros((2, 0)))

    def test_gamma1_mismatch(self) -> None:
        with pytest.raises(DimensionError):
            solve(np.eye(2), np.eye(3), np.zeros(2), np.ones((2, 1)), np.zeros((2, 0)))

    def test_psi_row_mismatch(self) -> None:
        with pytest.raises(DimensionError):
            solve(np.eye(2), np.eye(2), np.zeros(2), np.ones((3, 1)), np.zeros((2, 0)))

    def test_constant_shape(self) -> None:
        with pytest.raises(DimensionError):
            solve(np.eye(2), np.eye(2), np.zeros(3), np.ones((2, 1)), np.zeros((2, 0)))


class TestSolverConfig:
    """ソルバー設定と定数の対応"""

    def test_every_constant_is_configurable(self) -> None:
        constant_names = {f.name for f in dataclasses.fields(SolverConstants)}
        config_names = {f.name for f in dataclasses.fields(SolverConfig)}
        assert constant_names == config_names

    def test_defaults_come_from_constants(self) -> None:
        config = SolverConfig()
        assert config.unit_root_tolerance == SOLVER_CONSTANTS.unit_root_tolerance
        assert config.realsmall == SOLVER_CONSTANTS.realsmall
