from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class ModelStatus(str, Enum):
    PENDING = "PENDING"
    TRAINING = "TRAINING"
    TRAINED = "TRAINED"
    FAILED = "FAILED"

class CamelModel(BaseModel):
    """Base for API models serialized in camelCase"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())

class EpochMetric(CamelModel):
    """Metrics recorded after one epoch"""
    epoch: int
    accuracy: float
    loss: float
    val_accuracy: Optional[float] = None
    val_loss: Optional[float] = None

class ModelRecord(CamelModel):
    """A model definition together with its training state"""
    id: str
    name: str
    description: Optional[str] = None
    layers: List[Dict[str, Any]]
    status: ModelStatus = ModelStatus.PENDING
    error: Optional[str] = None
    training_logs: List[str] = Field(default_factory=list)
    metrics: List[EpochMetric] = Field(default_factory=list)
    training_set_ids: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
