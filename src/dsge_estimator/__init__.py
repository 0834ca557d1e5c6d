"""DSGE Estimator - 線形DSGEモデルのベイズ推定"""

from importlib.metadata import PackageNotFoundError, version


def _resolve_version() -> str:
    """配布メタデータからバージョンを解決する。"""
    try:
        return version("dsge-estimator")
    except PackageNotFoundError:
        # インストール前のローカル実行時フォールバック
        return "0+unknown"


__version__ = _resolve_version()

from dsge_estimator.core.model import DSGEModel, ModelSpecification, StructuralSystem
from dsge_estimator.core.solver import GensysSolver, solve
from dsge_estimator.estimation.draws import DrawCollection, DrawStore
from dsge_estimator.estimation.estimator import EstimationConfig, estimate
from dsge_estimator.estimation.mcmc import MCMCConfig
from dsge_estimator.parameters.registry import Parameter, ParameterRegistry

__all__ = [
    "DSGEModel",
    "DrawCollection",
    "DrawStore",
    "EstimationConfig",
    "GensysSolver",
    "MCMCConfig",
    "ModelSpecification",
    "Parameter",
    "ParameterRegistry",
    "StructuralSystem",
    "estimate",
    "solve",
]
