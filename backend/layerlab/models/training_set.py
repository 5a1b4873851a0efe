import uuid
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from layerlab.models.base import Base

class TrainingSet(Base):
    """Named collection of images; one training set is one class when training"""
    __tablename__ = "training_sets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), nullable=False)
    description = Column(String(255), nullable=True)
    is_selected = Column(Boolean, default=False, nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="training_sets")
    images = relationship(
        "TrainingImage",
        back_populates="training_set",
        cascade="all, delete-orphan",
        order_by="TrainingImage.created_at"
    )

class TrainingImage(Base):
    """An uploaded image stored on disk"""
    __tablename__ = "training_images"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    training_set_id = Column(String(36), ForeignKey("training_sets.id"), nullable=False, index=True)
    filename = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    path = Column(String(512), nullable=False)
    mimetype = Column(String(100), nullable=True)
    size = Column(Integer, nullable=False)
    content_hash = Column(String(32), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    training_set = relationship("TrainingSet", back_populates="images")
