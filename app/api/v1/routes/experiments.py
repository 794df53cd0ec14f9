from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict, Field
from app.core.middleware import get_current_user
from app.core.database import get_db
from app.core.errors import ExperimentServiceError, to_http_exception
from app.models.experiment import Experiment, ExperimentStatus, DurationUnit
from app.models.reflection import NextAction
from app.services.check_in_service import CheckInService
from app.services.experiment_service import ExperimentService, ExperimentDraft, ExperimentOverrides
from app.services.reflection_service import ReflectionService
from datetime import date, datetime
from typing import Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


class ExperimentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    duration_value: int
    duration_unit: DurationUnit
    duration_days: int
    start_date: date
    end_date: date
    status: ExperimentStatus
    completed_at: Optional[datetime] = None
    source_experiment_id: Optional[str] = None


class ExperimentDetailResponse(ExperimentResponse):
    current_streak: int
    progress: float


class CheckInRequest(BaseModel):
    check_in_date: Optional[date] = Field(None, alias="date")  # defaults to today
    completed: bool
    note: Optional[str] = Field(None, max_length=2000)

    model_config = ConfigDict(populate_by_name=True)


class CheckInResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    experiment_id: str
    check_in_date: date
    completed: bool
    note: Optional[str] = None
    recorded_at: datetime


class ReflectionRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)
    is_end: bool = False
    next_action: Optional[NextAction] = None
    overrides: Optional[ExperimentOverrides] = None  # only for next_action == modify
    start_new: bool = True  # continue: start a fresh copy of the experiment


class ReflectionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    experiment_id: str
    content: str
    is_end: bool
    next_action: Optional[NextAction] = None
    created_at: datetime


def get_experiment_service() -> ExperimentService:
    """Dependency to get experiment service instance"""
    return ExperimentService()


def get_check_in_service() -> CheckInService:
    """Dependency to get check-in service instance"""
    return CheckInService()


def get_reflection_service() -> ReflectionService:
    """Dependency to get reflection service instance"""
    return ReflectionService()


def _detail(
    db: Session,
    experiment: Experiment,
    experiment_service: ExperimentService,
    check_in_service: CheckInService
) -> dict:
    data = ExperimentResponse.model_validate(experiment).model_dump()
    data['current_streak'] = check_in_service.current_streak(db, experiment)
    data['progress'] = experiment_service.progress(experiment)
    return data


@router.post("", status_code=status.HTTP_201_CREATED, response_model=ExperimentResponse)
async def create_experiment(
    draft: ExperimentDraft,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    experiment_service: ExperimentService = Depends(get_experiment_service)
):
    """Create a new experiment (checked against the tier's active-experiment limit)"""
    user_id = current_user['uid']
    logger.info(f"create_experiment: Entry - user: {user_id}")

    try:
        experiment = experiment_service.create_experiment(db, user_id, draft)
        logger.info(f"create_experiment: Success - user: {user_id}, experiment: {experiment.id}")
        return experiment
    except ExperimentServiceError as e:
        logger.warning(f"create_experiment: {e.code} - {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"create_experiment: Failure - {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create experiment")


@router.get("")
async def list_experiments(
    experiment_status: Optional[ExperimentStatus] = Query(None, alias="status"),
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    experiment_service: ExperimentService = Depends(get_experiment_service)
):
    """List the current user's experiments, newest first"""
    user_id = current_user['uid']
    logger.info(f"list_experiments: Entry - user: {user_id}")

    try:
        experiments = experiment_service.list_experiments(db, user_id, experiment_status)
        return {"experiments": [ExperimentResponse.model_validate(e).model_dump(mode="json") for e in experiments]}
    except ExperimentServiceError as e:
        logger.warning(f"list_experiments: {e.code} - {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"list_experiments: Failure - {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to list experiments")


@router.get("/{experiment_id}", response_model=ExperimentDetailResponse)
async def get_experiment(
    experiment_id: str,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    experiment_service: ExperimentService = Depends(get_experiment_service),
    check_in_service: CheckInService = Depends(get_check_in_service)
):
    """Experiment with its current streak and progress"""
    try:
        experiment = experiment_service.get_experiment(db, experiment_id, current_user['uid'])
        return _detail(db, experiment, experiment_service, check_in_service)
    except ExperimentServiceError as e:
        logger.warning(f"get_experiment: {e.code} - {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"get_experiment: Failure - {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to get experiment")


@router.post("/{experiment_id}/check-ins", response_model=CheckInResponse)
async def record_check_in(
    experiment_id: str,
    request: CheckInRequest,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    experiment_service: ExperimentService = Depends(get_experiment_service),
    check_in_service: CheckInService = Depends(get_check_in_service)
):
    """Record (or overwrite) the check-in for a day"""
    user_id = current_user['uid']
    logger.info(f"record_check_in: Entry - user: {user_id}, experiment: {experiment_id}")

    try:
        experiment = experiment_service.get_experiment(db, experiment_id, user_id)
        check_in = check_in_service.record_check_in(
            db,
            experiment,
            request.check_in_date or check_in_service.clock.today(),
            request.completed,
            request.note
        )
        logger.info(f"record_check_in: Success - user: {user_id}, experiment: {experiment_id}")
        return check_in
    except ExperimentServiceError as e:
        logger.warning(f"record_check_in: {e.code} - {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"record_check_in: Failure - {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to record check-in")


@router.get("/{experiment_id}/check-ins")
async def list_check_ins(
    experiment_id: str,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    experiment_service: ExperimentService = Depends(get_experiment_service),
    check_in_service: CheckInService = Depends(get_check_in_service)
):
    try:
        experiment = experiment_service.get_experiment(db, experiment_id, current_user['uid'])
        check_ins = check_in_service.list_check_ins(db, experiment)
        return {
            "check_ins": [CheckInResponse.model_validate(c).model_dump(mode="json") for c in check_ins],
            "current_streak": check_in_service.current_streak(db, experiment),
        }
    except ExperimentServiceError as e:
        logger.warning(f"list_check_ins: {e.code} - {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"list_check_ins: Failure - {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to list check-ins")


@router.post("/{experiment_id}/reflections", status_code=status.HTTP_201_CREATED)
async def submit_reflection(
    experiment_id: str,
    request: ReflectionRequest,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    experiment_service: ExperimentService = Depends(get_experiment_service),
    reflection_service: ReflectionService = Depends(get_reflection_service)
):
    """Submit a daily reflection, or an end reflection with the next action"""
    user_id = current_user['uid']
    logger.info(f"submit_reflection: Entry - user: {user_id}, experiment: {experiment_id}, is_end: {request.is_end}")

    try:
        experiment = experiment_service.get_experiment(db, experiment_id, user_id)
        outcome = reflection_service.submit_reflection(
            db,
            experiment,
            request.content,
            is_end=request.is_end,
            next_action=request.next_action,
            overrides=request.overrides,
            start_new=request.start_new
        )
        logger.info(f"submit_reflection: Success - user: {user_id}, reflection: {outcome.reflection.id}")
        return {
            "reflection": ReflectionResponse.model_validate(outcome.reflection).model_dump(mode="json"),
            "experiment": ExperimentResponse.model_validate(outcome.experiment).model_dump(mode="json"),
            "next_experiment": (
                ExperimentResponse.model_validate(outcome.next_experiment).model_dump(mode="json")
                if outcome.next_experiment else None
            ),
        }
    except ExperimentServiceError as e:
        logger.warning(f"submit_reflection: {e.code} - {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"submit_reflection: Failure - {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to submit reflection")


@router.get("/{experiment_id}/reflections")
async def list_reflections(
    experiment_id: str,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    experiment_service: ExperimentService = Depends(get_experiment_service),
    reflection_service: ReflectionService = Depends(get_reflection_service)
):
    try:
        experiment = experiment_service.get_experiment(db, experiment_id, current_user['uid'])
        reflections = reflection_service.list_reflections(db, experiment)
        return {"reflections": [ReflectionResponse.model_validate(r).model_dump(mode="json") for r in reflections]}
    except ExperimentServiceError as e:
        logger.warning(f"list_reflections: {e.code} - {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"list_reflections: Failure - {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to list reflections")
