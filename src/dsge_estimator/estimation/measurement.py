"""観測方程式

状態空間モデル:
    s_t = T @ s_{t-1} + R @ ε_t + C,      ε_t ~ N(0, Q)
    y_t = D + Z @ s_t + u_t + M @ ε_t,    u_t ~ N(0, E)

ショック ε_t は観測誤差 M @ ε_t を通じて状態と同時点で相関しうる。
結合共分散:
    [[R Q R',  R V],
     [V' R',   E + M Q M']],   V = Q M'
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from dsge_estimator.core.exceptions import ShapeError

if TYPE_CHECKING:
    from dsge_estimator.core.model import DSGEModel

__all__ = ["MeasurementSystem", "measurement"]

_SYMMETRY_TOLERANCE = 1e-10


@dataclass(frozen=True)
class MeasurementSystem:
    """観測方程式の行列

    Attributes:
        Z: 観測行列 (n_obs, n_states)
        D: 観測方程式の定数項 (n_obs,)
        Q: ショック共分散 (n_shocks, n_shocks)
        E: 測定誤差共分散 (n_obs, n_obs)
        M: ショックの観測への直接負荷 (n_obs, n_shocks)
        combined: 状態・観測の結合共分散 (n_states + n_obs, n_states + n_obs)
    """

    Z: np.ndarray
    D: np.ndarray
    Q: np.ndarray
    E: np.ndarray
    M: np.ndarray
    combined: np.ndarray

    @classmethod
    def build(
        cls,
        Z: np.ndarray,
        D: np.ndarray,
        Q: np.ndarray,
        E: np.ndarray,
        M: np.ndarray,
        R: np.ndarray,
    ) -> "MeasurementSystem":
        """Z, D, Q, E, M とショック負荷 R から結合共分散を組み立てる"""
        Z = np.atleast_2d(np.asarray(Z, dtype=float))
        D = np.atleast_1d(np.asarray(D, dtype=float))
        Q = np.atleast_2d(np.asarray(Q, dtype=float))
        E = np.atleast_2d(np.asarray(E, dtype=float))
        M = np.atleast_2d(np.asarray(M, dtype=float))
        R = np.atleast_2d(np.asarray(R, dtype=float))

        if R.shape[1] != Q.shape[0] or M.shape[1] != Q.shape[0]:
            raise ShapeError(
                f"R{R.shape}・M{M.shape}の列数がQ{Q.shape}の次元と一致しません"
            )

        V = Q @ M.T
        RQR = R @ Q @ R.T
        RV = R @ V
        H = E + M @ Q @ M.T
        combined = np.block([[RQR, RV], [RV.T, H]])
        return cls(Z=Z, D=D, Q=Q, E=E, M=M, combined=combined)

    @property
    def n_states(self) -> int:
        return self.Z.shape[1]

    @property
    def n_observables(self) -> int:
        return self.Z.shape[0]

    @property
    def state_covariance(self) -> np.ndarray:
        """状態ショックの共分散 R Q R'"""
        n = self.n_states
        return self.combined[:n, :n]

    @property
    def cross_covariance(self) -> np.ndarray:
        """状態ショックと観測誤差の共分散 R V"""
        n = self.n_states
        return self.combined[:n, n:]

    @property
    def measurement_covariance(self) -> np.ndarray:
        """観測誤差の共分散 E + M Q M'"""
        n = self.n_states
        return self.combined[n:, n:]


def measurement(
    model: "DSGEModel",
    T: np.ndarray,
    R: np.ndarray,
    C: np.ndarray,
    *,
    with_shocks: bool = True,
) -> MeasurementSystem:
    """モデルの観測方程式ビルダーを呼び出し、形状を検証する

    Args:
        model: DSGEモデル
        T, R, C: 解かれた遷移方程式
        with_shocks: Falseの場合 Q はゼロでなければならない

    Raises:
        ShapeError: ビルダーが不正な形状・値の行列を返した場合
    """
    spec = model.spec
    ms = model.measurement(T, R, C, with_shocks=with_shocks)
    _validate(ms, spec.n_states, spec.n_shocks, spec.n_observables)
    if not with_shocks and np.any(ms.Q != 0.0):
        raise ShapeError("with_shocks=False の場合はショック共分散Qがゼロである必要があります")
    return ms


def _validate(ms: MeasurementSystem, n_states: int, n_shocks: int, n_obs: int) -> None:
    """観測方程式行列の形状を検証する"""
    expected = {
        "Z": (ms.Z, (n_obs, n_states)),
        "D": (ms.D, (n_obs,)),
        "Q": (ms.Q, (n_shocks, n_shocks)),
        "E": (ms.E, (n_obs, n_obs)),
        "M": (ms.M, (n_obs, n_shocks)),
        "combined": (ms.combined, (n_states + n_obs, n_states + n_obs)),
    }
    for name, (matrix, shape) in expected.items():
        if matrix.shape != shape:
            raise ShapeError(f"{name}は{shape}が必要 (got {matrix.shape})")

    if not np.allclose(ms.Q, ms.Q.T, atol=_SYMMETRY_TOLERANCE):
        raise ShapeError("ショック共分散Qが対称ではありません")
    if n_shocks > 0 and np.min(np.linalg.eigvalsh(ms.Q)) < -_SYMMETRY_TOLERANCE:
        raise ShapeError("ショック共分散Qが半正定値ではありません")
