"""gensys（Sims 2002）による線形合理的期待モデルのQZソルバー

モデル形式:
    Γ0 @ s_t = Γ1 @ s_{t-1} + C + Ψ @ ε_t + Π @ η_t

解の形式:
    s_t = T @ s_{t-1} + R @ ε_t + C'

一般化複素Schur分解 Γ0 = Q S Z^H, Γ1 = Q T Z^H を安定根が左上に来るよう並べ替え、
不安定ブロックを期待誤差 η_t で打ち消せるか（存在）、安定ブロックへの η_t の影響が
一意に決まるか（一意性）を特異値分解で判定する。
"""

import logging
import warnings
from dataclasses import dataclass, field

import numpy as np
from scipy.linalg import ordqz

from dsge_estimator.core.exceptions import (
    IndeterminacyError,
    NoStableSolutionError,
    SolutionError,
)
from dsge_estimator.core.model import check_structural_dimensions
from dsge_estimator.parameters.constants import SOLVER_CONSTANTS

__all__ = [
    "GensysResult",
    "GensysSolver",
    "SolverConfig",
    "solve",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SolverConfig:
    """gensysの設定

    Attributes:
        unit_root_tolerance: |λ| < 1 - tol の根のみ安定とみなす。
            1 ± tol の帯にある根は不安定側に数え、境界根として報告する。
        realsmall: 特異値のランク判定と同時ゼロ固有値の判定閾値
    """

    unit_root_tolerance: float = SOLVER_CONSTANTS.unit_root_tolerance
    realsmall: float = SOLVER_CONSTANTS.realsmall


@dataclass
class GensysResult:
    """gensysの結果"""

    # 遷移方程式: s_t = T @ s_{t-1} + R @ ε_t + C
    T: np.ndarray
    R: np.ndarray
    C: np.ndarray

    # 診断情報
    eigenvalues: np.ndarray = field(repr=False)
    n_stable: int
    n_unstable: int
    n_boundary: int
    message: str


def _truncated_svd(
    matrix: np.ndarray, realsmall: float
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """閾値を超える特異値だけを残した特異値分解 (U, d, V) を返す"""
    rows, cols = matrix.shape
    if rows == 0 or cols == 0:
        return (
            np.zeros((rows, 0), dtype=complex),
            np.zeros(0),
            np.zeros((cols, 0), dtype=complex),
        )
    u, d, vh = np.linalg.svd(matrix)
    big = d > realsmall
    k = int(np.sum(big))
    return u[:, :k], d[:k], vh.conj().T[:, :k]


class GensysSolver:
    """一般QZ分解に基づく gensys ソルバー"""

    def __init__(
        self,
        gamma0: np.ndarray,
        gamma1: np.ndarray,
        c: np.ndarray,
        psi: np.ndarray,
        pi: np.ndarray,
        config: SolverConfig | None = None,
    ) -> None:
        self.gamma0 = np.asarray(gamma0, dtype=float)
        self.gamma1 = np.asarray(gamma1, dtype=float)
        self.c = np.asarray(c, dtype=float)
        self.psi = np.asarray(psi, dtype=float)
        self.pi = np.asarray(pi, dtype=float)
        self.config = config or SolverConfig()

        check_structural_dimensions(self.gamma0, self.gamma1, self.c, self.psi, self.pi)

        self.n = self.gamma0.shape[0]
        self.n_shocks = self.psi.shape[1]
        self.n_expectational = self.pi.shape[1]

    def solve(self, *, emit_warnings: bool = False) -> GensysResult:
        """gensysを実行する

        Raises:
            NoStableSolutionError: 安定解が存在しない場合
            IndeterminacyError: 解が一意に定まらない場合
            SolutionError: QZ分解の失敗・同時ゼロ固有値
        """
        n = self.n
        tol = self.config.unit_root_tolerance
        realsmall = self.config.realsmall

        def is_stable(alpha: np.ndarray, beta: np.ndarray) -> np.ndarray:
            # 根 λ = β/α。α≈0 の無限根は不安定側
            return np.abs(beta) < (1.0 - tol) * np.abs(alpha)

        try:
            S, T, _, _, Q, Z = ordqz(
                self.gamma0.astype(complex),
                self.gamma1.astype(complex),
                sort=is_stable,
                output="complex",
            )
        except (ValueError, np.linalg.LinAlgError) as e:
            raise SolutionError(f"QZ分解に失敗しました: {e}") from e

        a_diag = np.diag(S)
        b_diag = np.diag(T)

        coincident = (np.abs(a_diag) < realsmall) & (np.abs(b_diag) < realsmall)
        if np.any(coincident):
            raise SolutionError("同時ゼロ固有値が存在します（平衡条件が線形従属）")

        with np.errstate(divide="ignore", invalid="ignore"):
            eigenvalues = np.where(np.abs(a_diag) > realsmall, b_diag / a_diag, np.inf)

        stable = is_stable(a_diag, b_diag)
        n_unstable = int(np.sum(~stable))
        ns = n - n_unstable
        finite = np.isfinite(eigenvalues)
        boundary = finite & (np.abs(np.abs(eigenvalues) - 1.0) <= tol)
        n_boundary = int(np.sum(boundary))

        if n_boundary > 0:
            msg = f"単位円境界上の根が{n_boundary}個あり、不安定根として扱います (tol={tol:.1e})"
            if emit_warnings:
                warnings.warn(msg, RuntimeWarning, stacklevel=2)
            else:
                logger.debug(msg)

        qt = Q.conj().T
        q1 = qt[:ns, :]
        q2 = qt[ns:, :]

        ueta, deta, veta = _truncated_svd(q2 @ self.pi, realsmall)
        ueta1, deta1, veta1 = _truncated_svd(q1 @ self.pi, realsmall)

        # 存在: 不安定ブロックへのショックの影響が期待誤差の列空間に含まれる
        uz, _, _ = _truncated_svd(q2 @ self.psi, realsmall)
        exists = float(np.linalg.norm(uz - ueta @ (ueta.conj().T @ uz))) < realsmall * n
        if not exists:
            raise NoStableSolutionError(
                "安定解が存在しません: "
                f"不安定根 {n_unstable} 個に対し期待誤差 {self.n_expectational} 個 "
                f"(有効ランク {deta.size})"
            )

        # 一意性: 安定ブロックへの期待誤差の影響が不安定ブロックから決まる
        loose = veta1 - veta @ (veta.conj().T @ veta1)
        unique = veta1.shape[1] == 0 or float(np.linalg.norm(loose)) < realsmall * n
        if not unique:
            raise IndeterminacyError(
                "解が一意に定まりません（不決定）: "
                f"不安定根 {n_unstable} 個に対し期待誤差 {self.n_expectational} 個"
            )

        correction = (
            ueta @ np.diag(1.0 / deta) @ veta.conj().T @ veta1 @ np.diag(deta1) @ ueta1.conj().T
        ).conj().T
        tmat = np.hstack([np.eye(ns), -correction])

        G0 = np.vstack([tmat @ S, np.hstack([np.zeros((n_unstable, ns)), np.eye(n_unstable)])])
        G1 = np.vstack([tmat @ T, np.zeros((n_unstable, n))])

        try:
            G0I = np.linalg.inv(G0)
        except np.linalg.LinAlgError as e:
            raise SolutionError(f"変換後の係数行列が特異です: {e}") from e

        G1 = G0I @ G1

        c_stable = tmat @ (qt @ self.c)
        c_unstable = np.zeros(n_unstable, dtype=complex)
        if n_unstable > 0 and np.any(self.c != 0.0):
            usix = slice(ns, n)
            try:
                c_unstable = np.linalg.solve(S[usix, usix] - T[usix, usix], q2 @ self.c)
            except np.linalg.LinAlgError as e:
                raise SolutionError(f"単位根のため定数項が定まりません: {e}") from e
        C = G0I @ np.concatenate([c_stable, c_unstable])

        impact = G0I @ np.vstack([tmat @ (qt @ self.psi), np.zeros((n_unstable, self.n_shocks))])

        Zh = Z.conj().T
        T_out = np.real(Z @ G1 @ Zh)
        C_out = np.real(Z @ C)
        R_out = np.real(Z @ impact)

        message = f"一意な安定解を取得しました (安定根 {ns}, 不安定根 {n_unstable})"
        if n_boundary > 0:
            message += f" (警告: 境界根 {n_boundary} 個)"

        return GensysResult(
            T=T_out,
            R=R_out,
            C=C_out,
            eigenvalues=eigenvalues,
            n_stable=ns,
            n_unstable=n_unstable,
            n_boundary=n_boundary,
            message=message,
        )


def solve(
    gamma0: np.ndarray,
    gamma1: np.ndarray,
    c: np.ndarray,
    psi: np.ndarray,
    pi: np.ndarray,
    *,
    config: SolverConfig | None = None,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """構造行列を解いて (T, R, C') を返す

    Raises:
        DimensionError: 行列の次元が不整合な場合
        NoStableSolutionError: 安定解が存在しない場合
        IndeterminacyError: 解が一意に定まらない場合
    """
    result = GensysSolver(gamma0, gamma1, c, psi, pi, config=config).solve()
    return result.T, result.R, result.C
