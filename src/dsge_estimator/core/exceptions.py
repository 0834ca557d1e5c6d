"""DSGE推定カスタム例外階層

FailFast原則に従い、エラーは即座に報告される。
サンプリング中に回復可能なもの（SolutionError, NumericalError）と
致命的なもの（ValidationError, OptimizationError）を型で区別する。
"""


class DSGEError(Exception):
    """DSGE推定の基底例外クラス"""

    pass


class ValidationError(DSGEError):
    """入力バリデーションエラー"""

    pass


class DimensionError(ValidationError):
    """構造行列の次元不整合エラー

    モデル側の方程式ビルダーが不正な形状の行列を返した場合に発生。
    プログラミングエラーであり回復しない。
    """

    pass


class ShapeError(ValidationError):
    """観測方程式行列の形状エラー"""

    pass


class ParameterValidationError(ValidationError):
    """パラメータ値が有効範囲外のエラー"""

    pass


class SolverError(DSGEError):
    """ソルバー関連のエラー"""

    pass


class SolutionError(SolverError):
    """合理的期待解が一意に存在しないエラー

    パラメータ依存であり、サンプリング中は提案の棄却として扱われる。
    """

    pass


class NoStableSolutionError(SolutionError):
    """安定解が存在しないエラー

    不安定根を期待誤差で打ち消せない場合に発生。
    """

    pass


class IndeterminacyError(SolutionError):
    """解の不決定性エラー

    期待誤差が一意な予測整合的経路を決定できない場合に発生。
    """

    pass


class NumericalError(DSGEError):
    """Kalmanフィルタの数値計算エラー

    予測誤差共分散が正定値でない、または状態がNaN/infになった場合に発生。
    """

    pass


class EstimationError(DSGEError):
    """推定関連のエラー"""

    pass


class OptimizationError(EstimationError):
    """事後モード探索の失敗

    収束しない、またはヘシアンが正定値でない場合に発生。
    """

    pass


class DrawNotFoundError(DSGEError, KeyError):
    """指定タグのドローが保存されていないエラー"""

    pass
