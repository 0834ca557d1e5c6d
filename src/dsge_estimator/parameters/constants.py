"""数値計算の定数定義

マジックナンバーを排除し、意味のある名前を付ける
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SolverConstants:
    """gensysソルバーの定数"""

    # |λ| が 1 ± unit_root_tolerance の帯にある根は境界根として報告する
    unit_root_tolerance: float = 1e-6
    # 特異値のランク判定・同時ゼロ固有値の判定に用いる閾値
    realsmall: float = 1e-7


@dataclass(frozen=True)
class FilterConstants:
    """Kalmanフィルタの定数"""

    diffuse_variance: float = 1e6  # 非定常時の散漫初期分散
    pd_tolerance: float = 1e-8  # 予測誤差共分散の正定値判定の許容誤差
    # 正則化を許す予測誤差共分散の最小スケール（pd_tolerance の倍数）
    min_innovation_scale: float = 1e4
    stationarity_margin: float = 1e-8  # スペクトル半径 < 1 - margin で定常とみなす


@dataclass(frozen=True)
class ModeSearchConstants:
    """事後モード探索の定数"""

    max_iterations: int = 500
    gradient_tolerance: float = 1e-5
    hessian_step: float = 1e-4
    infeasible_penalty: float = 1e10  # 解なし領域での負の対数事後確率


@dataclass(frozen=True)
class SamplerConstants:
    """MHサンプラーの定数"""

    optimal_scale: float = 2.38  # Roberts-Gelman-Gilks の最適スケール
    prior_draw_max_attempts: int = 1000


# デフォルトインスタンス
SOLVER_CONSTANTS = SolverConstants()
FILTER_CONSTANTS = FilterConstants()
MODE_SEARCH_CONSTANTS = ModeSearchConstants()
SAMPLER_CONSTANTS = SamplerConstants()
