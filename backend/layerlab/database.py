import os
import logging
from typing import List, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from layerlab.config import DATABASE_URL
from layerlab.models import Base, User, TrainingSet, TrainingImage

# Setup logging
logger = logging.getLogger("layerlab-api")

# Create SQLAlchemy engine
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Database initialization
def init_database():
    """Initialize the database and create tables"""
    try:
        if DATABASE_URL.startswith("sqlite:///"):
            os.makedirs(os.path.dirname(os.path.abspath(DATABASE_URL[len("sqlite:///"):])), exist_ok=True)
        Base.metadata.create_all(bind=engine)
        logger.info("Database schema initialized successfully")

        # Create a default user if no users exist
        db = get_db()
        try:
            if db.query(User).count() == 0:
                create_user(db, username="demo", email="demo@example.com")
        finally:
            db.close()

        return True
    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}")
        return False

# Database session context manager
def get_db_session():
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# Database context helper for non-dependency contexts
def get_db():
    """Get database session as a regular function (not a generator)"""
    return SessionLocal()

# User operations
def create_user(db: Session, username: str, email: str) -> Optional[User]:
    """Create a new user"""
    try:
        user = User(username=username, email=email)
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info(f"Created user: {user.username}")
        return user
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to create user: {str(e)}")
        return None

def get_users(db: Session) -> List[User]:
    """Get all users"""
    return db.query(User).order_by(User.created_at).all()

def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
    """Get user by ID"""
    return db.query(User).filter(User.id == user_id).first()

def get_user_by_username(db: Session, username: str) -> Optional[User]:
    """Get user by username"""
    return db.query(User).filter(User.username == username).first()

def get_user_by_email(db: Session, email: str) -> Optional[User]:
    """Get user by email"""
    return db.query(User).filter(User.email == email).first()

def delete_user(db: Session, user_id: str) -> Optional[List[str]]:
    """
    Delete a user together with their training sets and images

    Returns the paths of the deleted images, or None on failure
    """
    try:
        user = get_user_by_id(db, user_id)
        if not user:
            return None

        paths = [image.path for training_set in user.training_sets for image in training_set.images]
        db.delete(user)
        db.commit()
        logger.info(f"Deleted user: {user.username}")
        return paths
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to delete user: {str(e)}")
        return None

# Training set operations
def create_training_set(db: Session, name: str, description: Optional[str], user_id: str) -> Optional[TrainingSet]:
    """Create a training set owned by a user"""
    try:
        training_set = TrainingSet(name=name, description=description, user_id=user_id)
        db.add(training_set)
        db.commit()
        db.refresh(training_set)
        logger.info(f"Created training set {training_set.id} ({name}) for user {user_id}")
        return training_set
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to create training set: {str(e)}")
        return None

def get_training_sets(db: Session, user_id: Optional[str] = None) -> List[TrainingSet]:
    """Get training sets, newest first, optionally restricted to one user"""
    query = db.query(TrainingSet)
    if user_id is not None:
        query = query.filter(TrainingSet.user_id == user_id)
    return query.order_by(TrainingSet.created_at.desc()).all()

def get_training_set(db: Session, training_set_id: str) -> Optional[TrainingSet]:
    """Get training set by ID"""
    return db.query(TrainingSet).filter(TrainingSet.id == training_set_id).first()

def get_training_images(db: Session, training_set_id: str) -> List[TrainingImage]:
    """Get the images of a training set in upload order"""
    return (
        db.query(TrainingImage)
        .filter(TrainingImage.training_set_id == training_set_id)
        .order_by(TrainingImage.created_at)
        .all()
    )

def find_training_image_by_hash(db: Session, training_set_id: str, content_hash: str) -> Optional[TrainingImage]:
    """Find an image with identical content in the same training set"""
    return (
        db.query(TrainingImage)
        .filter(TrainingImage.training_set_id == training_set_id, TrainingImage.content_hash == content_hash)
        .first()
    )

def add_training_image(db: Session, training_set_id: str, filename: str, original_name: str,
                       path: str, mimetype: Optional[str], size: int, content_hash: str) -> Optional[TrainingImage]:
    """Add an image record to a training set"""
    try:
        image = TrainingImage(
            training_set_id=training_set_id,
            filename=filename,
            original_name=original_name,
            path=path,
            mimetype=mimetype,
            size=size,
            content_hash=content_hash
        )
        db.add(image)
        db.commit()
        db.refresh(image)
        return image
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to add image to training set {training_set_id}: {str(e)}")
        return None

def select_training_set(db: Session, training_set_id: str) -> Optional[TrainingSet]:
    """Mark a training set as the owner's selected one, unselecting the others"""
    try:
        training_set = get_training_set(db, training_set_id)
        if not training_set:
            return None

        db.query(TrainingSet).filter(
            TrainingSet.user_id == training_set.user_id,
            TrainingSet.id != training_set_id
        ).update({TrainingSet.is_selected: False}, synchronize_session=False)
        training_set.is_selected = True
        db.commit()
        db.refresh(training_set)
        logger.info(f"Selected training set {training_set_id} for user {training_set.user_id}")
        return training_set
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to select training set: {str(e)}")
        return None

def delete_training_set(db: Session, training_set_id: str) -> Optional[List[str]]:
    """
    Delete a training set and its images

    Returns the paths of the deleted images, or None on failure
    """
    try:
        training_set = get_training_set(db, training_set_id)
        if not training_set:
            return None

        paths = [image.path for image in training_set.images]
        db.delete(training_set)
        db.commit()
        logger.info(f"Deleted training set {training_set_id} with {len(paths)} images")
        return paths
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to delete training set: {str(e)}")
        return None
