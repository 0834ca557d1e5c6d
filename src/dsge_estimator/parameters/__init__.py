"""パラメータ管理"""

from dsge_estimator.parameters.constants import (
    FILTER_CONSTANTS,
    MODE_SEARCH_CONSTANTS,
    SAMPLER_CONSTANTS,
    SOLVER_CONSTANTS,
)
from dsge_estimator.parameters.priors import DistributionType, ParameterPrior
from dsge_estimator.parameters.registry import Parameter, ParameterRegistry
from dsge_estimator.parameters.transforms import Transform, TransformType

__all__ = [
    "DistributionType",
    "FILTER_CONSTANTS",
    "MODE_SEARCH_CONSTANTS",
    "Parameter",
    "ParameterPrior",
    "ParameterRegistry",
    "SAMPLER_CONSTANTS",
    "SOLVER_CONSTANTS",
    "Transform",
    "TransformType",
]
