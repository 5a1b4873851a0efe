from pydantic import ConfigDict, EmailStr, Field
from datetime import datetime

from layerlab.models.records import CamelModel

class UserCreate(CamelModel):
    """User registration model"""
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr

class UserResponse(CamelModel):
    """User information response model"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    email: str
    created_at: datetime

class UserDeleteResponse(CamelModel):
    """Response model for user deletion"""
    success: bool
    message: str
    user_id: str
