"""モデル仕様と線形DSGEモデルの基底クラス

平衡条件の正準形:
    Γ0 @ s_t = Γ1 @ s_{t-1} + C + Ψ @ ε_t + Π @ η_t

s_t: 状態変数, ε_t: 構造ショック, η_t: 期待誤差

具体的なモデルは2つの拡張点（平衡条件ビルダーと観測方程式ビルダー）を実装する。
行列の要素は必ず名前→インデックスの対応を通じて指定する。
"""

import copy
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from dsge_estimator.core.exceptions import DimensionError, ValidationError
from dsge_estimator.parameters.registry import ParameterRegistry

if TYPE_CHECKING:
    from dsge_estimator.estimation.measurement import MeasurementSystem


class IndexMap(Mapping[str, int]):
    """挿入順の名前→0始まりインデックスの不変マッピング"""

    def __init__(self, names: tuple[str, ...] | list[str]) -> None:
        names = tuple(names)
        if len(set(names)) != len(names):
            duplicates = sorted({n for n in names if names.count(n) > 1})
            raise ValidationError(f"名前が重複しています: {duplicates}")
        self._names = names
        self._index = {name: i for i, name in enumerate(names)}

    def __getitem__(self, name: str) -> int:
        try:
            return self._index[name]
        except KeyError:
            raise ValidationError(f"無効な名前です: '{name}' (有効: {list(self._names)})") from None

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def get(self, name: str, default: int | None = None) -> int | None:  # type: ignore[override]
        return self._index.get(name, default)

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __repr__(self) -> str:
        return f"IndexMap({list(self._names)})"

    @property
    def names(self) -> tuple[str, ...]:
        return self._names


@dataclass(frozen=True)
class ModelSpecification:
    """モデル変数の定義

    Attributes:
        states: 状態変数名
        shocks: 構造ショック名
        expectational_errors: 期待誤差名
        observables: 観測変数名
        equations: 方程式ラベル。空の場合は状態変数名を使う。
    """

    states: tuple[str, ...]
    shocks: tuple[str, ...]
    expectational_errors: tuple[str, ...] = ()
    observables: tuple[str, ...] = ()
    equations: tuple[str, ...] = ()
    endo: IndexMap = field(init=False, repr=False, compare=False)
    exo: IndexMap = field(init=False, repr=False, compare=False)
    expect: IndexMap = field(init=False, repr=False, compare=False)
    obs: IndexMap = field(init=False, repr=False, compare=False)
    eq: IndexMap = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        equations = self.equations or self.states
        object.__setattr__(self, "equations", tuple(equations))
        object.__setattr__(self, "endo", IndexMap(self.states))
        object.__setattr__(self, "exo", IndexMap(self.shocks))
        object.__setattr__(self, "expect", IndexMap(self.expectational_errors))
        object.__setattr__(self, "obs", IndexMap(self.observables))
        object.__setattr__(self, "eq", IndexMap(self.equations))
        if len(self.equations) != len(self.states):
            raise ValidationError(
                f"方程式数({len(self.equations)})と状態変数数({len(self.states)})が一致しません"
            )

    @property
    def n_states(self) -> int:
        return len(self.states)

    @property
    def n_shocks(self) -> int:
        return len(self.shocks)

    @property
    def n_expectational_errors(self) -> int:
        return len(self.expectational_errors)

    @property
    def n_observables(self) -> int:
        return len(self.observables)

    @property
    def n_equations(self) -> int:
        return len(self.equations)


@dataclass(frozen=True)
class StructuralSystem:
    """平衡条件の構造行列

    Γ0 @ s_t = Γ1 @ s_{t-1} + C + Ψ @ ε_t + Π @ η_t
    """

    gamma0: np.ndarray  # (n, n)
    gamma1: np.ndarray  # (n, n)
    c: np.ndarray  # (n,)
    psi: np.ndarray  # (n, k)
    pi: np.ndarray  # (n, m)

    @classmethod
    def zeros(cls, spec: ModelSpecification) -> "StructuralSystem":
        """仕様の次元に合わせたゼロ行列を返す（ビルダーが要素を埋める）"""
        n = spec.n_states
        return cls(
            gamma0=np.zeros((n, n)),
            gamma1=np.zeros((n, n)),
            c=np.zeros(n),
            psi=np.zeros((n, spec.n_shocks)),
            pi=np.zeros((n, spec.n_expectational_errors)),
        )

    def validate(self, spec: ModelSpecification | None = None) -> None:
        """次元の整合性を検証する

        Raises:
            DimensionError: 行列の形状が不整合な場合
        """
        check_structural_dimensions(self.gamma0, self.gamma1, self.c, self.psi, self.pi)
        if spec is None:
            return
        n = spec.n_states
        if self.gamma0.shape != (n, n):
            raise DimensionError(f"Γ0は({n}, {n})が必要 (got {self.gamma0.shape})")
        if self.psi.shape[1] != spec.n_shocks:
            raise DimensionError(f"Ψの列数は{spec.n_shocks}が必要 (got {self.psi.shape[1]})")
        if self.pi.shape[1] != spec.n_expectational_errors:
            raise DimensionError(
                f"Πの列数は{spec.n_expectational_errors}が必要 (got {self.pi.shape[1]})"
            )


def check_structural_dimensions(
    gamma0: np.ndarray,
    gamma1: np.ndarray,
    c: np.ndarray,
    psi: np.ndarray,
    pi: np.ndarray,
) -> None:
    """構造行列の次元整合性を検証する"""
    if gamma0.ndim != 2 or gamma0.shape[0] != gamma0.shape[1]:
        raise DimensionError(f"Γ0は正方行列が必要 (got {gamma0.shape})")
    n = gamma0.shape[0]
    if gamma1.shape != (n, n):
        raise DimensionError(f"Γ1は({n}, {n})が必要 (got {gamma1.shape})")
    if c.shape != (n,):
        raise DimensionError(f"Cは({n},)が必要 (got {c.shape})")
    if psi.ndim != 2 or psi.shape[0] != n:
        raise DimensionError(f"Ψは({n}, k)が必要 (got {psi.shape})")
    if pi.ndim != 2 or pi.shape[0] != n:
        raise DimensionError(f"Πは({n}, m)が必要 (got {pi.shape})")


@dataclass(frozen=True)
class SolvedSystem:
    """遷移方程式 s_t = T @ s_{t-1} + R @ ε_t + C"""

    T: np.ndarray
    R: np.ndarray
    C: np.ndarray


class DSGEModel(ABC):
    """線形DSGEモデルの基底クラス

    具体的なモデルは `spec` と `parameters` を構築時に一度だけ用意し、
    `equilibrium_conditions` と `measurement` を実装する。
    パラメータの値は評価ごとに `parameters` 経由で明示的に設定される。
    """

    name: str = "dsge"

    def __init__(self, spec: ModelSpecification, parameters: ParameterRegistry) -> None:
        self.spec = spec
        self.parameters = parameters

    def __getitem__(self, name: str) -> float:
        """パラメータの現在値を取得する"""
        return self.parameters[name]

    @property
    def endo(self) -> IndexMap:
        return self.spec.endo

    @property
    def exo(self) -> IndexMap:
        return self.spec.exo

    @property
    def expect(self) -> IndexMap:
        return self.spec.expect

    @property
    def obs(self) -> IndexMap:
        return self.spec.obs

    @property
    def eq(self) -> IndexMap:
        return self.spec.eq

    @abstractmethod
    def equilibrium_conditions(self) -> StructuralSystem:
        """現在のパラメータ値で構造行列 (Γ0, Γ1, C, Ψ, Π) を構築する"""

    @abstractmethod
    def measurement(
        self,
        T: np.ndarray,
        R: np.ndarray,
        C: np.ndarray,
        *,
        with_shocks: bool = True,
    ) -> "MeasurementSystem":
        """解かれた遷移行列から観測方程式の行列を構築する

        with_shocks=False の場合はショック共分散 Q をゼロとして返す。
        """

    def copy(self) -> "DSGEModel":
        """パラメータレジストリを独立させた作業用コピーを返す"""
        return self.with_parameters(self.parameters.copy())

    def with_parameters(self, parameters: ParameterRegistry) -> "DSGEModel":
        """別のパラメータレジストリを持つコピーを返す

        Raises:
            ValidationError: パラメータ名の並びが一致しない場合
        """
        if parameters.names != self.parameters.names:
            raise ValidationError(
                f"パラメータ名が一致しません: {parameters.names} (期待: {self.parameters.names})"
            )
        clone = copy.copy(self)
        clone.parameters = parameters
        return clone
