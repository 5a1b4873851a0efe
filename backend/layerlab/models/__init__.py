from layerlab.models.base import Base
from layerlab.models.user import User
from layerlab.models.training_set import TrainingSet, TrainingImage

__all__ = [
    "Base",
    "User",
    "TrainingSet",
    "TrainingImage"
]
