import logging
from datetime import date
from enum import Enum
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import ExperimentServiceError, to_http_exception
from app.core.middleware import get_current_user
from app.services.check_in_service import CheckInService
from app.services.experiment_service import ExperimentService

logger = logging.getLogger(__name__)

router = APIRouter()


class ReminderAction(str, Enum):
    """Buttons on the check-in reminder"""

    YES = "yes"
    NO = "no"


class NotificationActionRequest(BaseModel):
    """Request model for a tapped reminder action"""

    experimentId: str = Field(..., description="Experiment the reminder was about")
    action: ReminderAction = Field(..., description="Button the user tapped")
    checkInDate: Optional[date] = Field(
        None, description="Day from the reminder payload; defaults to today"
    )
    note: Optional[str] = Field(None, max_length=2000)

    class Config:
        populate_by_name = True


@router.post("/action")
async def handle_notification_action(
    request: NotificationActionRequest,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Turn a yes/no tap on a reminder into a check-in

    The reminder carries the experiment ids and the day it asked about, so a
    tap that arrives after midnight still lands on the right day.
    """
    user_id = current_user["uid"]
    logger.info(
        f"handle_notification_action: Entry - user: {user_id}, experiment: {request.experimentId}, action: {request.action}"
    )

    check_in_service = CheckInService()
    experiment_service = ExperimentService(clock=check_in_service.clock)

    try:
        experiment = experiment_service.get_experiment(db, request.experimentId, user_id)
        check_in = check_in_service.record_check_in(
            db,
            experiment,
            request.checkInDate or check_in_service.clock.today(),
            completed=request.action == ReminderAction.YES,
            note=request.note,
        )
        streak = check_in_service.current_streak(db, experiment)

        logger.info(
            f"handle_notification_action: Success - user: {user_id}, experiment: {experiment.id}, streak: {streak}"
        )
        return {
            "success": True,
            "check_in_id": check_in.id,
            "check_in_date": check_in.check_in_date.isoformat(),
            "completed": check_in.completed,
            "current_streak": streak,
        }
    except ExperimentServiceError as e:
        logger.warning(f"handle_notification_action: {e.code} - {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"handle_notification_action: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to handle notification action",
        )
