from pydantic import Field
from typing import List, Literal, Optional

from layerlab.models.layers import PositiveStrictInt
from layerlab.models.records import CamelModel

class TrainingRequest(CamelModel):
    """Request model for training a model"""
    training_set_ids: List[str] = Field(..., min_length=1)
    epochs: PositiveStrictInt
    batch_size: PositiveStrictInt
    augment: bool = False
    patience: Optional[PositiveStrictInt] = None

class TrainingMetrics(CamelModel):
    accuracy: float = 0.0
    loss: float = 0.0

class TrainingResponse(CamelModel):
    """Response model for training status and results"""
    model_id: str
    status: Literal["started", "completed", "failed"]
    metrics: TrainingMetrics = Field(default_factory=TrainingMetrics)
    epochs_run: int = 0
    stopped_early: bool = False
    error: Optional[str] = None
