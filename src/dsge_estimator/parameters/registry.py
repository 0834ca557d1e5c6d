"""パラメータレジストリ

名前付きパラメータ（事前分布・有界変換・固定フラグ・現在値）を挿入順に保持し、
推定対象（自由パラメータ）のフラットなベクトルとの双方向変換を担当する。

固定パラメータは最適化・サンプリングの対象ベクトルに現れず、
その値はすべての評価で一定に保たれる。
"""

import copy
import dataclasses
from collections.abc import Iterator
from dataclasses import dataclass, field

import numpy as np

from dsge_estimator.core.exceptions import ParameterValidationError, ValidationError
from dsge_estimator.parameters.priors import ParameterPrior
from dsge_estimator.parameters.transforms import Transform


@dataclass(frozen=True, eq=False)
class Parameter:
    """推定パラメータ

    事前分布・変換・固定フラグは構築後に変更できない。値は `set` でのみ更新する。

    Attributes:
        name: パラメータ名（一意識別子）
        value: 現在値（モデル空間）
        prior: 事前分布。Noneの場合は対数事前確率に寄与しない。
        transform: 有界変換
        fixed: Trueの場合は推定対象外
        description: 説明
    """

    name: str
    value: float
    prior: ParameterPrior | None = None
    transform: Transform = field(default_factory=Transform)
    fixed: bool = False
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", float(self.value))
        self.validate(self.value)

    def validate(self, value: float) -> None:
        if not self.transform.contains(value):
            raise ParameterValidationError(
                f"パラメータ '{self.name}' の値 {value} が有効範囲 "
                f"({self.transform.lower}, {self.transform.upper}) の外です"
            )

    def set(self, value: float) -> None:
        """値を更新する（範囲検証付き）"""
        value = float(value)
        self.validate(value)
        object.__setattr__(self, "value", value)

    def log_prior(self, value: float | None = None) -> float:
        if self.prior is None:
            return 0.0
        return self.prior.log_pdf(self.value if value is None else value)


class ParameterRegistry:
    """名前付きパラメータの集合

    形状（パラメータの並びと固定フラグ）は構築後に変更されず、
    値のみが評価ごとに明示的に更新される。
    """

    def __init__(self, parameters: list[Parameter] | None = None) -> None:
        self._parameters: dict[str, Parameter] = {}
        for p in parameters or []:
            if p.name in self._parameters:
                raise ValidationError(f"パラメータ '{p.name}' は既に登録されています")
            self._parameters[p.name] = p

    def __getitem__(self, name: str) -> float:
        return self.get(name).value

    def __contains__(self, name: object) -> bool:
        return name in self._parameters

    def __iter__(self) -> Iterator[Parameter]:
        return iter(self._parameters.values())

    def __len__(self) -> int:
        return len(self._parameters)

    def get(self, name: str) -> Parameter:
        """名前でパラメータを取得する"""
        try:
            return self._parameters[name]
        except KeyError:
            raise ValidationError(f"未登録のパラメータ名です: '{name}'") from None

    @property
    def names(self) -> list[str]:
        """全パラメータ名のリスト"""
        return list(self._parameters)

    @property
    def free_names(self) -> list[str]:
        """自由パラメータ名のリスト"""
        return [p.name for p in self if not p.fixed]

    @property
    def free_mask(self) -> np.ndarray:
        """全パラメータベクトル上での自由パラメータのマスク"""
        return np.array([not p.fixed for p in self], dtype=bool)

    @property
    def n_free(self) -> int:
        return len(self.free_names)

    def _free(self) -> list[Parameter]:
        return [p for p in self if not p.fixed]

    def values(self) -> np.ndarray:
        """全パラメータの現在値ベクトル"""
        return np.array([p.value for p in self])

    def free_values(self) -> np.ndarray:
        """自由パラメータの現在値ベクトル"""
        return np.array([p.value for p in self._free()])

    def _check_free_vector(self, theta: np.ndarray) -> np.ndarray:
        theta = np.asarray(theta, dtype=float)
        if theta.shape != (self.n_free,):
            raise ParameterValidationError(
                f"自由パラメータベクトルは({self.n_free},)が必要 (got {theta.shape})"
            )
        return theta

    def free_support(self) -> np.ndarray:
        """自由パラメータの台の端点 (n_free, 2)"""
        return np.array([p.transform.support for p in self._free()], dtype=float).reshape(-1, 2)

    def in_support(self, theta: np.ndarray) -> bool:
        """自由パラメータベクトルが全変換の台に含まれるか"""
        theta = self._check_free_vector(theta)
        return all(p.transform.contains(v) for p, v in zip(self._free(), theta, strict=True))

    def set_free_values(self, theta: np.ndarray) -> None:
        """自由パラメータの値を更新する。固定パラメータは変更しない。"""
        theta = self._check_free_vector(theta)
        free = self._free()
        for p, v in zip(free, theta, strict=True):
            p.validate(float(v))
        for p, v in zip(free, theta, strict=True):
            p.set(float(v))

    def expand(self, theta: np.ndarray) -> np.ndarray:
        """自由パラメータベクトルを固定値を含む全パラメータベクトルに展開する"""
        theta = self._check_free_vector(theta)
        full = self.values()
        full[self.free_mask] = theta
        return full

    def to_unconstrained(self, theta: np.ndarray) -> np.ndarray:
        """自由パラメータをモデル空間から制約なし空間へ変換する"""
        theta = self._check_free_vector(theta)
        return np.array(
            [p.transform.to_unconstrained(v) for p, v in zip(self._free(), theta, strict=True)]
        )

    def to_model(self, x: np.ndarray) -> np.ndarray:
        """自由パラメータを制約なし空間からモデル空間へ変換する"""
        x = self._check_free_vector(x)
        return np.array([p.transform.to_model(v) for p, v in zip(self._free(), x, strict=True)])

    def log_prior(self, theta: np.ndarray | None = None) -> float:
        """自由パラメータの対数事前確率の合計

        Args:
            theta: 自由パラメータベクトル。Noneの場合は現在値を使用。

        Returns:
            対数事前確率。台の外の場合は -inf
        """
        free = self._free()
        values = self.free_values() if theta is None else self._check_free_vector(theta)
        total = 0.0
        for p, v in zip(free, values, strict=True):
            if not p.transform.contains(v):
                return -np.inf
            lp = p.log_prior(float(v))
            if not np.isfinite(lp):
                return -np.inf
            total += lp
        return total

    def sample_prior(self, rng: np.random.Generator) -> np.ndarray:
        """自由パラメータを事前分布からサンプルする

        事前分布を持たないパラメータは現在値を返す。
        """
        draws = []
        for p in self._free():
            if p.prior is None:
                draws.append(p.value)
                continue
            draw = float(p.prior.sample(rng, size=1)[0])
            draws.append(draw)
        return np.array(draws)

    def copy(self) -> "ParameterRegistry":
        """値を独立に変更できる作業用コピーを返す"""
        return ParameterRegistry([copy.copy(p) for p in self])

    def replace(self, name: str, **changes: object) -> "ParameterRegistry":
        """1つのパラメータの属性を差し替えた新しいレジストリを返す

        元のレジストリは変更しない。固定フラグや事前分布を変える場合に使う。

        Raises:
            ValidationError: 未登録のパラメータ名の場合
        """
        target = self.get(name)
        replaced = dataclasses.replace(target, **changes)  # type: ignore[arg-type]
        return ParameterRegistry([replaced if p is target else copy.copy(p) for p in self])
