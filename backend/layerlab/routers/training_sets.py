from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session
from typing import List, Optional
import os
import logging

from layerlab.config import ALLOWED_IMAGE_EXTENSIONS, MAX_IMAGE_BYTES, MAX_IMAGES_PER_UPLOAD, UPLOAD_DIR
from layerlab.models.training_sets import (
    TrainingSetCreate, TrainingSetResponse, TrainingImageResponse, ImageUploadResponse
)
from layerlab.database import (
    get_db_session, get_user_by_id, create_training_set, get_training_sets, get_training_set,
    get_training_images, find_training_image_by_hash, add_training_image,
    select_training_set, delete_training_set
)
from layerlab.utils import UploadTooLarge, read_upload_file, save_bytes, remove_files

router = APIRouter(
    prefix="/training-sets",
    tags=["training-sets"]
)

logger = logging.getLogger("layerlab-api")

def get_training_set_or_404(training_set_id: str, db: Session = Depends(get_db_session)):
    training_set = get_training_set(db, training_set_id)
    if not training_set:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Training set {training_set_id} not found"
        )
    return training_set

@router.post("", response_model=TrainingSetResponse, status_code=status.HTTP_201_CREATED)
async def create_new_training_set(data: TrainingSetCreate, db: Session = Depends(get_db_session)):
    """
    Create an empty training set owned by a user
    """
    if not get_user_by_id(db, data.user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {data.user_id} not found"
        )

    training_set = create_training_set(db, name=data.name, description=data.description, user_id=data.user_id)
    if not training_set:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create training set"
        )
    return training_set

@router.get("", response_model=List[TrainingSetResponse])
async def list_training_sets(
    user_id: Optional[str] = Query(None, alias="userId"),
    db: Session = Depends(get_db_session)
):
    """
    List training sets, newest first. Pass userId to list one user's sets.
    """
    return get_training_sets(db, user_id=user_id)

@router.get("/{training_set_id}", response_model=TrainingSetResponse)
async def get_one_training_set(training_set=Depends(get_training_set_or_404)):
    return training_set

@router.delete("/{training_set_id}")
async def delete_one_training_set(
    training_set_id: str,
    training_set=Depends(get_training_set_or_404),
    db: Session = Depends(get_db_session)
):
    """
    Delete a training set, its image records and the stored image files
    """
    paths = delete_training_set(db, training_set_id)
    if paths is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete training set"
        )

    removed = remove_files(paths)
    return {
        "success": True,
        "message": f"Training set {training_set_id} deleted",
        "removedImages": removed
    }

@router.post("/{training_set_id}/select", response_model=TrainingSetResponse)
async def select_one_training_set(
    training_set_id: str,
    training_set=Depends(get_training_set_or_404),
    db: Session = Depends(get_db_session)
):
    """
    Mark this training set as its owner's selected set; the owner's other sets are unselected
    """
    selected = select_training_set(db, training_set_id)
    if not selected:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to select training set"
        )
    return selected

@router.get("/{training_set_id}/images", response_model=List[TrainingImageResponse])
async def list_training_images(
    training_set_id: str,
    training_set=Depends(get_training_set_or_404),
    db: Session = Depends(get_db_session)
):
    return get_training_images(db, training_set_id)

@router.post("/{training_set_id}/images", response_model=ImageUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_training_images(
    training_set_id: str,
    images: List[UploadFile] = File(...),
    training_set=Depends(get_training_set_or_404),
    db: Session = Depends(get_db_session)
):
    """
    Add images to a training set

    - images: up to 10 files (.jpg, .jpeg, .png, .bmp, .gif), 5MB each

    Files whose content already exists in the set are skipped.
    """
    if len(images) > MAX_IMAGES_PER_UPLOAD:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {MAX_IMAGES_PER_UPLOAD} images can be uploaded at once"
        )

    # Check file types
    for image in images:
        if not (image.filename or "").lower().endswith(ALLOWED_IMAGE_EXTENSIONS):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"File {image.filename} is not one of the allowed formats: {', '.join(ALLOWED_IMAGE_EXTENSIONS)}"
            )

    # Read and size-check every file before anything is written
    uploads = []
    for image in images:
        try:
            content, content_hash = await read_upload_file(image, MAX_IMAGE_BYTES)
        except UploadTooLarge as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        uploads.append((image, content, content_hash))

    added, skipped, seen = [], [], set()
    for image, content, content_hash in uploads:
        if content_hash in seen or find_training_image_by_hash(db, training_set_id, content_hash):
            logger.info(f"Skipping duplicate image {image.filename} in training set {training_set_id}")
            skipped.append(image.filename)
            continue
        seen.add(content_hash)

        extension = os.path.splitext(image.filename)[1].lower()
        filename = f"{content_hash}{extension}"
        path = os.path.join(UPLOAD_DIR, training_set_id, filename)
        save_bytes(content, path)

        record = add_training_image(
            db,
            training_set_id=training_set_id,
            filename=filename,
            original_name=image.filename,
            path=path,
            mimetype=image.content_type,
            size=len(content),
            content_hash=content_hash
        )
        if not record:
            remove_files([path])
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to store image {image.filename}"
            )
        added.append(record)

    logger.info(f"Added {len(added)} images to training set {training_set_id} ({len(skipped)} duplicates skipped)")
    return ImageUploadResponse(
        added=[TrainingImageResponse.model_validate(record) for record in added],
        skipped_duplicates=skipped
    )
