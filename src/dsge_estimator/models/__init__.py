"""推定コアを利用する具体的なモデル"""

from dsge_estimator.core.model import DSGEModel
from dsge_estimator.models.ma1 import MA1Model
from dsge_estimator.models.present_value import PresentValueModel

MODELS: dict[str, type[DSGEModel]] = {
    MA1Model.name: MA1Model,
    PresentValueModel.name: PresentValueModel,
}

__all__ = ["MA1Model", "MODELS", "PresentValueModel"]
