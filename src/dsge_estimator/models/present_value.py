"""現在価値モデル

    x_t = β E_t x_{t+1} + z_t
    z_t = ρ z_{t-1} + ε_t,            ε_t ~ N(0, σ²)
    y_t = x_t + u_t,                  u_t ~ N(0, σ_me²)

状態 s_t = (x_t, z_t, Ex_t), Ex_t = E_t x_{t+1}。
期待誤差 η_t = x_t - Ex_{t-1} を1つ持ち、β < 1 で一意な安定解
    x_t = z_t / (1 - βρ)
を持つ。β > 1 では不決定となる。割引因子 β はデフォルトで固定する。
"""

import numpy as np

from dsge_estimator.core.model import DSGEModel, ModelSpecification, StructuralSystem
from dsge_estimator.estimation.measurement import MeasurementSystem
from dsge_estimator.parameters import (
    DistributionType,
    Parameter,
    ParameterPrior,
    ParameterRegistry,
    Transform,
)


class PresentValueModel(DSGEModel):
    """現在価値モデル"""

    name = "present_value"

    def __init__(
        self,
        beta: float = 0.95,
        rho: float = 0.8,
        sigma: float = 0.5,
        sigma_me: float = 0.1,
        *,
        fix_beta: bool = True,
    ) -> None:
        spec = ModelSpecification(
            states=("x", "z", "Ex"),
            shocks=("eps_z",),
            expectational_errors=("eta_x",),
            observables=("y",),
            equations=("euler", "z_process", "expectation"),
        )
        parameters = ParameterRegistry(
            [
                Parameter(
                    "beta",
                    beta,
                    prior=ParameterPrior("beta", DistributionType.BETA, 0.95, 0.02),
                    transform=Transform.positive(),
                    fixed=fix_beta,
                    description="割引因子",
                ),
                Parameter(
                    "rho",
                    rho,
                    prior=ParameterPrior("rho", DistributionType.BETA, 0.7, 0.15),
                    transform=Transform.bounded(0.0, 1.0),
                    description="z の持続性",
                ),
                Parameter(
                    "sigma",
                    sigma,
                    prior=ParameterPrior("sigma", DistributionType.INV_GAMMA, 0.5, 0.5),
                    transform=Transform.positive(),
                    description="z ショックの標準偏差",
                ),
                Parameter(
                    "sigma_me",
                    sigma_me,
                    prior=ParameterPrior("sigma_me", DistributionType.INV_GAMMA, 0.1, 0.1),
                    transform=Transform.positive(),
                    description="測定誤差の標準偏差",
                ),
            ]
        )
        super().__init__(spec, parameters)

    def equilibrium_conditions(self) -> StructuralSystem:
        system = StructuralSystem.zeros(self.spec)
        endo, exo, expect, eq = self.endo, self.exo, self.expect, self.eq
        beta = self["beta"]
        rho = self["rho"]

        # x_t - β Ex_t - z_t = 0
        system.gamma0[eq["euler"], endo["x"]] = 1.0
        system.gamma0[eq["euler"], endo["Ex"]] = -beta
        system.gamma0[eq["euler"], endo["z"]] = -1.0

        # z_t = ρ z_{t-1} + ε_t
        system.gamma0[eq["z_process"], endo["z"]] = 1.0
        system.gamma1[eq["z_process"], endo["z"]] = rho
        system.psi[eq["z_process"], exo["eps_z"]] = 1.0

        # x_t = Ex_{t-1} + η_t
        system.gamma0[eq["expectation"], endo["x"]] = 1.0
        system.gamma1[eq["expectation"], endo["Ex"]] = 1.0
        system.pi[eq["expectation"], expect["eta_x"]] = 1.0

        return system

    def measurement(
        self,
        T: np.ndarray,
        R: np.ndarray,
        C: np.ndarray,
        *,
        with_shocks: bool = True,
    ) -> MeasurementSystem:
        spec = self.spec
        endo, exo, obs = self.endo, self.exo, self.obs

        Z = np.zeros((spec.n_observables, spec.n_states))
        Z[obs["y"], endo["x"]] = 1.0
        D = np.zeros(spec.n_observables)

        Q = np.zeros((spec.n_shocks, spec.n_shocks))
        if with_shocks:
            Q[exo["eps_z"], exo["eps_z"]] = self["sigma"] ** 2

        E = np.zeros((spec.n_observables, spec.n_observables))
        E[obs["y"], obs["y"]] = self["sigma_me"] ** 2
        M = np.zeros((spec.n_observables, spec.n_shocks))
        return MeasurementSystem.build(Z, D, Q, E, M, R)
