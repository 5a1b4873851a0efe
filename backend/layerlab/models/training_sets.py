from pydantic import ConfigDict, Field
from datetime import datetime
from typing import List, Optional

from layerlab.models.records import CamelModel

class TrainingSetCreate(CamelModel):
    """Model for creating a training set"""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=255)
    user_id: str

class TrainingImageResponse(CamelModel):
    """Response model for a stored training image"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    training_set_id: str
    filename: str
    original_name: str
    path: str
    mimetype: Optional[str] = None
    size: int
    created_at: datetime

class TrainingSetResponse(CamelModel):
    """Response model for a training set with its images"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    is_selected: bool
    user_id: str
    created_at: datetime
    updated_at: datetime
    images: List[TrainingImageResponse] = []

class ImageUploadResponse(CamelModel):
    """Response model for an image upload"""
    added: List[TrainingImageResponse]
    skipped_duplicates: List[str] = []
