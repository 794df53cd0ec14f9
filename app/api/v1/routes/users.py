from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict, Field
from app.core.middleware import get_current_user
from app.core.database import get_db
from app.core.errors import ExperimentServiceError, to_http_exception
from app.services.tier_service import TierService
from app.services.user_service import UserService
from datetime import datetime, time
from typing import Optional
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


class PreferencesRequest(BaseModel):
    reminder_time: Optional[time] = None  # "HH:MM"
    notification_token: Optional[str] = Field(None, max_length=4096)
    clear_notification_token: bool = False  # on logout


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: Optional[str] = None
    tier: str
    reminder_time: time
    has_notification_token: bool = False
    created_at: Optional[datetime] = None


def _user_response(user) -> UserResponse:
    response = UserResponse.model_validate(user)
    response.has_notification_token = bool(user.notification_token)
    return response


@router.post("/me", response_model=UserResponse)
async def sync_current_user(
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create the profile on first sign-in, or return the existing one"""
    logger.info(f"sync_current_user: Entry - user: {current_user['uid']}")

    try:
        user = UserService().get_or_create_user(db, current_user['uid'], current_user.get('email'))
        logger.info(f"sync_current_user: Success - user: {user.id}")
        return _user_response(user)
    except ExperimentServiceError as e:
        logger.warning(f"sync_current_user: {e.code} - {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"sync_current_user: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to sync user"
        )


@router.get("/me", response_model=UserResponse)
async def get_me(
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        return _user_response(UserService().get_user(db, current_user['uid']))
    except ExperimentServiceError as e:
        raise to_http_exception(e)


@router.put("/me/preferences", response_model=UserResponse)
async def update_preferences(
    request: PreferencesRequest,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Set the daily reminder time and/or register the device's FCM token"""
    logger.info(f"update_preferences: Entry - user: {current_user['uid']}")

    kwargs = {'reminder_time': request.reminder_time}
    if request.clear_notification_token:
        kwargs['notification_token'] = None
    elif request.notification_token is not None:
        kwargs['notification_token'] = request.notification_token

    try:
        user = UserService().update_preferences(db, current_user['uid'], **kwargs)
        logger.info(f"update_preferences: Success - user: {user.id}")
        return _user_response(user)
    except ExperimentServiceError as e:
        logger.warning(f"update_preferences: {e.code} - {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"update_preferences: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update preferences"
        )


@router.get("/me/tier-status")
async def get_tier_status(
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Active experiment count against the tier limit"""
    try:
        user = UserService().get_user(db, current_user['uid'])
        return TierService().get_tier_status(db, user)
    except ExperimentServiceError as e:
        logger.warning(f"get_tier_status: {e.code} - {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"get_tier_status: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get tier status"
        )
