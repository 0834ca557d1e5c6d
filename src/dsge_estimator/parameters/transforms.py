"""パラメータの有界変換

最適化器が制約なし空間を探索できるよう、経済学的な値（モデル空間）と
実数全体（制約なし空間）を相互に変換する。

    UNTRANSFORMED: v = x
    SQUARE_ROOT:   v = (a+b)/2 + (b-a)/2 * c*x / sqrt(1 + c²x²)    (a < v < b)
    EXPONENTIAL:   v = a + exp(c*x)                                 (a < v)
"""

from dataclasses import dataclass
from enum import Enum

import numpy as np

from dsge_estimator.core.exceptions import ParameterValidationError


class TransformType(Enum):
    """変換の種類"""

    UNTRANSFORMED = "untransformed"
    SQUARE_ROOT = "square_root"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class Transform:
    """モデル空間と制約なし空間の双方向変換

    Attributes:
        kind: 変換の種類
        lower: 下限（UNTRANSFORMEDでは無視）
        upper: 上限（SQUARE_ROOTのみ使用）
        scale: 変換の傾き c
    """

    kind: TransformType = TransformType.UNTRANSFORMED
    lower: float = -np.inf
    upper: float = np.inf
    scale: float = 1.0

    def __post_init__(self) -> None:
        if self.scale <= 0.0:
            raise ParameterValidationError(f"scaleは正である必要があります (got {self.scale})")
        match self.kind:
            case TransformType.SQUARE_ROOT:
                if not (np.isfinite(self.lower) and np.isfinite(self.upper)):
                    raise ParameterValidationError("SQUARE_ROOT変換には有限の上下限が必要です")
                if self.lower >= self.upper:
                    raise ParameterValidationError(
                        f"下限は上限より小さい必要があります ({self.lower} >= {self.upper})"
                    )
            case TransformType.EXPONENTIAL:
                if not np.isfinite(self.lower):
                    raise ParameterValidationError("EXPONENTIAL変換には有限の下限が必要です")
            case TransformType.UNTRANSFORMED:
                pass

    @classmethod
    def bounded(cls, lower: float, upper: float, scale: float = 1.0) -> "Transform":
        return cls(TransformType.SQUARE_ROOT, lower, upper, scale)

    @classmethod
    def positive(cls, lower: float = 0.0, scale: float = 1.0) -> "Transform":
        return cls(TransformType.EXPONENTIAL, lower, np.inf, scale)

    @property
    def support(self) -> tuple[float, float]:
        """変換の台（開区間）の端点"""
        match self.kind:
            case TransformType.UNTRANSFORMED:
                return -np.inf, np.inf
            case TransformType.SQUARE_ROOT:
                return self.lower, self.upper
            case TransformType.EXPONENTIAL:
                return self.lower, np.inf

    def contains(self, value: float) -> bool:
        """値が変換の台（開区間）に含まれるか"""
        match self.kind:
            case TransformType.UNTRANSFORMED:
                return bool(np.isfinite(value))
            case TransformType.SQUARE_ROOT:
                return bool(self.lower < value < self.upper)
            case TransformType.EXPONENTIAL:
                return bool(self.lower < value < np.inf)

    def to_unconstrained(self, value: float) -> float:
        """モデル空間の値を制約なし空間へ変換する

        Raises:
            ParameterValidationError: 値が台の外にある場合
        """
        if not self.contains(value):
            raise ParameterValidationError(
                f"値 {value} は変換 {self.kind.value} の台 ({self.lower}, {self.upper}) の外です"
            )
        c = self.scale
        match self.kind:
            case TransformType.UNTRANSFORMED:
                return float(value)
            case TransformType.SQUARE_ROOT:
                a, b = self.lower, self.upper
                cx = 2.0 * (value - 0.5 * (a + b)) / (b - a)
                return float(cx / np.sqrt(1.0 - cx**2) / c)
            case TransformType.EXPONENTIAL:
                return float(np.log(value - self.lower) / c)

    def to_model(self, x: float) -> float:
        """制約なし空間の値をモデル空間へ変換する"""
        c = self.scale
        match self.kind:
            case TransformType.UNTRANSFORMED:
                return float(x)
            case TransformType.SQUARE_ROOT:
                a, b = self.lower, self.upper
                return float(0.5 * (a + b) + 0.5 * (b - a) * c * x / np.sqrt(1.0 + (c * x) ** 2))
            case TransformType.EXPONENTIAL:
                return float(self.lower + np.exp(c * x))
