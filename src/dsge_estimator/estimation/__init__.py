"""ベイズ推定モジュール

尤度評価（Kalmanフィルタ）、事後モード探索、MHサンプリング、ドロー保存を提供する。
"""

from dsge_estimator.estimation.data_loader import ObservationTable, SampleWindow
from dsge_estimator.estimation.diagnostics import ConvergenceDiagnostics, run_diagnostics
from dsge_estimator.estimation.draws import DrawCollection, DrawKind, DrawStore
from dsge_estimator.estimation.estimator import EstimationConfig, estimate
from dsge_estimator.estimation.kalman_filter import (
    KalmanConfig,
    KalmanFilterResult,
    kalman_filter,
)
from dsge_estimator.estimation.likelihood import (
    likelihood,
    log_posterior,
    make_log_posterior,
    solve_model,
)
from dsge_estimator.estimation.mcmc import (
    BlockedMetropolisHastings,
    MCMCConfig,
    SamplerState,
    acceptance_probability,
    sample,
    sample_prior,
)
from dsge_estimator.estimation.measurement import MeasurementSystem, measurement
from dsge_estimator.estimation.mode import ModeSearchConfig, find_mode
from dsge_estimator.estimation.results import EstimationResult, build_estimation_result
from dsge_estimator.estimation.simulation import simulate

__all__ = [
    "BlockedMetropolisHastings",
    "ConvergenceDiagnostics",
    "DrawCollection",
    "DrawKind",
    "DrawStore",
    "EstimationConfig",
    "EstimationResult",
    "KalmanConfig",
    "KalmanFilterResult",
    "MCMCConfig",
    "MeasurementSystem",
    "ModeSearchConfig",
    "ObservationTable",
    "SampleWindow",
    "SamplerState",
    "acceptance_probability",
    "build_estimation_result",
    "estimate",
    "find_mode",
    "kalman_filter",
    "likelihood",
    "log_posterior",
    "make_log_posterior",
    "measurement",
    "run_diagnostics",
    "sample",
    "sample_prior",
    "simulate",
    "solve_model",
]
