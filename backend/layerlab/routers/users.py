from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
import logging

from layerlab.models.users import UserCreate, UserResponse, UserDeleteResponse
from layerlab.database import (
    get_db_session, create_user, get_users, get_user_by_id,
    get_user_by_username, get_user_by_email, delete_user
)
from layerlab.utils import remove_files

router = APIRouter(
    prefix="/users",
    tags=["users"]
)

logger = logging.getLogger("layerlab-api")

@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register_user(user_data: UserCreate, db: Session = Depends(get_db_session)):
    """
    Register a new user

    Usernames and emails must be unique.
    """
    if get_user_by_username(db, user_data.username):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Username '{user_data.username}' is already taken"
        )

    if get_user_by_email(db, user_data.email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Email '{user_data.email}' is already registered"
        )

    user = create_user(db, username=user_data.username, email=user_data.email)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create user"
        )

    return user

@router.get("", response_model=List[UserResponse])
async def list_users(db: Session = Depends(get_db_session)):
    return get_users(db)

@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, db: Session = Depends(get_db_session)):
    user = get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} not found"
        )
    return user

@router.delete("/{user_id}", response_model=UserDeleteResponse)
async def delete_user_account(user_id: str, db: Session = Depends(get_db_session)):
    """
    Delete a user together with their training sets and stored images
    """
    user = get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} not found"
        )
    username = user.username

    paths = delete_user(db, user_id)
    if paths is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete user account"
        )

    removed = remove_files(paths)
    logger.info(f"Removed {removed} image files of user {username}")

    return UserDeleteResponse(
        success=True,
        message=f"User '{username}' deleted successfully",
        user_id=user_id
    )
