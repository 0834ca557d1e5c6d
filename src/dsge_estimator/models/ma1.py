"""MA(1)モデル

    x_t = μ + u_t + β u_{t-1},    u_t ~ N(0, σ²)

状態 s_t = (u_t, u_{t-1}) とすると
    遷移方程式: s_t = [[0, 0], [1, 0]] s_{t-1} + [1, 0]' u_t
    観測方程式: x_t = μ + [1, β] s_t

期待誤差を持たない（Πは空）。
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


class MA1Model(DSGEModel):
    """MA(1)モデル"""

    name = "ma1"

    def __init__(
        self,
        mu: float = 0.75,
        beta: float = 0.9,
        sigma: float = 0.25,
        *,
        fix_mu: bool = False,
    ) -> None:
        spec = ModelSpecification(
            states=("u_t", "u_t1"),
            shocks=("u_t",),
            observables=("x_t",),
            equations=("eq_u_t", "eq_u_t1"),
        )
        parameters = ParameterRegistry(
            [
                Parameter(
                    "mu",
                    mu,
                    prior=ParameterPrior("mu", DistributionType.NORMAL, 0.5, 1.0),
                    fixed=fix_mu,
                    description="観測値の平均",
                ),
                Parameter(
                    "beta",
                    beta,
                    prior=ParameterPrior(
                        "beta", DistributionType.NORMAL, 0.5, 0.5, lower_bound=-1.0, upper_bound=1.0
                    ),
                    transform=Transform.bounded(-1.0, 1.0),
                    description="MA係数",
                ),
                Parameter(
                    "sigma",
                    sigma,
                    prior=ParameterPrior("sigma", DistributionType.INV_GAMMA, 0.5, 0.5),
                    transform=Transform.positive(),
                    description="ショック標準偏差",
                ),
            ]
        )
        super().__init__(spec, parameters)

    def equilibrium_conditions(self) -> StructuralSystem:
        system = StructuralSystem.zeros(self.spec)
        endo, exo, eq = self.endo, self.exo, self.eq

        # u_t = ε_t
        system.gamma0[eq["eq_u_t"], endo["u_t"]] = 1.0
        system.psi[eq["eq_u_t"], exo["u_t"]] = 1.0

        # u_t1 = u_{t-1}
        system.gamma0[eq["eq_u_t1"], endo["u_t1"]] = 1.0
        system.gamma1[eq["eq_u_t1"], endo["u_t"]] = 1.0

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
        Z[obs["x_t"], endo["u_t"]] = 1.0
        Z[obs["x_t"], endo["u_t1"]] = self["beta"]

        D = np.zeros(spec.n_observables)
        D[obs["x_t"]] = self["mu"]

        Q = np.zeros((spec.n_shocks, spec.n_shocks))
        if with_shocks:
            Q[exo["u_t"], exo["u_t"]] = self["sigma"] ** 2

        E = np.zeros((spec.n_observables, spec.n_observables))
        M = np.zeros((spec.n_observables, spec.n_shocks))
        return MeasurementSystem.build(Z, D, Q, E, M, R)
