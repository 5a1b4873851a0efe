from pydantic import Field
from typing import List

from layerlab.models.records import CamelModel

class PredictRequest(CamelModel):
    """Request model for predicting on raw feature rows"""
    data: List[List[float]] = Field(..., min_length=1)

class PredictResponse(CamelModel):
    """Model for vector prediction response"""
    predictions: List[List[float]]

class ImagePrediction(CamelModel):
    """Top class for one image"""
    class_index: int = Field(..., alias="class")
    training_set: str
    confidence: float
    probabilities: List[float]

class ImagePredictionResponse(CamelModel):
    prediction: ImagePrediction
