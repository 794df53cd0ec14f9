from sqlalchemy.orm import Session
from sqlalchemy import and_
from sqlalchemy.exc import OperationalError
from pydantic import BaseModel, Field
from app.core.clock import Clock, get_clock
from app.core.errors import (
    AlreadyCompleted,
    InvalidInput,
    NotFound,
    StoreUnavailable,
    TierLimitExceeded,
)
from app.core.locks import create_lock
from app.models.experiment import Experiment, ExperimentStatus, DurationUnit, duration_in_days
from app.services.tier_service import TierService
from app.services.user_service import UserService
from datetime import date, datetime, timedelta
from typing import Optional
import uuid
import logging

logger = logging.getLogger(__name__)

_ONE_DAY = timedelta(days=1)


class ExperimentDraft(BaseModel):
    """Fields a user supplies for a new experiment"""
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=2000)
    duration_value: int = Field(gt=0, le=365)
    duration_unit: DurationUnit = DurationUnit.DAYS
    start_date: Optional[date] = None  # defaults to today


class ExperimentOverrides(BaseModel):
    """Subset of experiment fields replaced when an experiment is modified"""
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=2000)
    duration_value: Optional[int] = Field(default=None, gt=0, le=365)
    duration_unit: Optional[DurationUnit] = None


def compute_progress(experiment: Experiment, today: date) -> float:
    """
    Fraction of the experiment window that has been reached, in [0, 1].

    The current day counts as elapsed once it has begun, so the start day is
    1/duration and the last day of the window is 1.0.
    """
    days_elapsed = (min(today, experiment.end_date - _ONE_DAY) - experiment.start_date).days + 1
    days_elapsed = max(0, min(days_elapsed, experiment.duration_days))
    return days_elapsed / experiment.duration_days


class ExperimentService:
    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or get_clock()
        self.tier_service = TierService()
        self.user_service = UserService()
        self.logger = logging.getLogger(__name__)

    def get_experiment(self, db: Session, experiment_id: str, user_id: Optional[str] = None) -> Experiment:
        """Get an experiment, optionally checking that user_id owns it"""
        query = db.query(Experiment).filter(Experiment.id == experiment_id)
        if user_id is not None:
            query = query.filter(Experiment.user_id == user_id)
        experiment = query.first()
        if not experiment:
            raise NotFound("Experiment not found", experiment_id=experiment_id)
        return experiment

    def load_for_update(self, db: Session, experiment_id: str) -> Experiment:
        """Re-read an experiment with a row lock, discarding any stale copy in the session"""
        experiment = db.query(Experiment).filter(
            Experiment.id == experiment_id
        ).with_for_update().populate_existing().first()
        if not experiment:
            raise NotFound("Experiment not found", experiment_id=experiment_id)
        return experiment

    def list_experiments(
        self,
        db: Session,
        user_id: str,
        status: Optional[ExperimentStatus] = None
    ) -> list[Experiment]:
        self.logger.info(f"list_experiments: Entry - user: {user_id}, status: {status}")

        query = db.query(Experiment).filter(Experiment.user_id == user_id)
        if status is not None:
            query = query.filter(Experiment.status == status)
        experiments = query.order_by(Experiment.start_date.desc(), Experiment.created_at.desc()).all()

        self.logger.info(f"list_experiments: Success - user: {user_id}, count: {len(experiments)}")
        return experiments

    def create_experiment(self, db: Session, user_id: str, draft: ExperimentDraft) -> Experiment:
        """
        Create a new active experiment after checking the tier limit.

        The tier check and the insert run under the user's create lock. If the
        lock cannot be taken the limit still applies, but two concurrent
        requests may both pass it.

        Raises:
            TierLimitExceeded: free user already at the active-experiment limit
            InvalidInput: start date in the past
        """
        self.logger.info(f"create_experiment: Entry - user: {user_id}, name: {draft.name}")

        user = self.user_service.get_user(db, user_id)
        today = self.clock.today()
        start_date = draft.start_date or today
        if start_date < today:
            raise InvalidInput("Experiment cannot start in the past", start_date=start_date)

        with create_lock(user_id):
            try:
                # Experiments that ran out since the last scan should not hold a slot
                if self._complete_expired(db, today, user_id=user_id):
                    db.commit()

                if not self.tier_service.can_create_experiment(db, user):
                    self.logger.info(f"create_experiment: Tier limit exceeded - user: {user_id}, tier: {user.tier}")
                    raise TierLimitExceeded(
                        "Active experiment limit reached for your tier",
                        tier=user.tier,
                        limit=self.tier_service.get_limit(user),
                    )

                experiment = self._new_experiment(
                    user_id=user_id,
                    name=draft.name,
                    description=draft.description,
                    duration_value=draft.duration_value,
                    duration_unit=draft.duration_unit,
                    start_date=start_date,
                )
                db.add(experiment)
                db.commit()
                db.refresh(experiment)
            except OperationalError as e:
                db.rollback()
                self.logger.error(f"create_experiment: Failure - {e}")
                raise StoreUnavailable("Experiment store unavailable", operation="create_experiment") from e

        self.logger.info(f"create_experiment: Success - user: {user_id}, experiment: {experiment.id}")
        return experiment

    def progress(self, experiment: Experiment, today: Optional[date] = None) -> float:
        return compute_progress(experiment, today or self.clock.today())

    def mark_completed(self, db: Session, experiment: Experiment, completed_at: Optional[datetime] = None):
        """
        Move an experiment from active to completed (no commit).

        Raises:
            AlreadyCompleted: experiment is already completed
        """
        if experiment.status != ExperimentStatus.ACTIVE:
            raise AlreadyCompleted("Experiment is already completed", experiment_id=experiment.id)
        experiment.status = ExperimentStatus.COMPLETED
        experiment.completed_at = completed_at or self.clock.now()

    def start_follow_up(
        self,
        db: Session,
        source: Experiment,
        overrides: Optional[ExperimentOverrides] = None
    ) -> Experiment:
        """
        Build the experiment that follows a completed one (no commit).

        Copies name, description and duration from the source, applies any
        overrides and starts today. It takes the slot the source frees, so it
        is not checked against the tier limit.
        """
        fields = {
            'name': source.name,
            'description': source.description,
            'duration_value': source.duration_value,
            'duration_unit': source.duration_unit,
        }
        if overrides is not None:
            fields.update(overrides.model_dump(exclude_none=True))

        experiment = self._new_experiment(
            user_id=source.user_id,
            start_date=self.clock.today(),
            source_experiment_id=source.id,
            **fields
        )
        db.add(experiment)
        return experiment

    def auto_complete_expired(self, db: Session, today: Optional[date] = None) -> int:
        """
        Complete every active experiment whose window has ended.

        Safe to run repeatedly; an experiment already completed is skipped.

        Returns:
            int: Number of experiments completed by this run.
        """
        today = today or self.clock.today()
        self.logger.info(f"auto_complete_expired: Entry - today: {today}")

        try:
            completed = self._complete_expired(db, today)
            db.commit()
        except OperationalError as e:
            db.rollback()
            self.logger.error(f"auto_complete_expired: Failure - {e}")
            raise StoreUnavailable("Experiment store unavailable", operation="auto_complete_expired") from e

        self.logger.info(f"auto_complete_expired: Success - completed: {completed}")
        return completed

    def _complete_expired(self, db: Session, today: date, user_id: Optional[str] = None) -> int:
        query = db.query(Experiment).filter(
            and_(
                Experiment.status == ExperimentStatus.ACTIVE,
                Experiment.start_date < today
            )
        )
        if user_id is not None:
            query = query.filter(Experiment.user_id == user_id)

        now = self.clock.now()
        completed = 0
        for experiment in query.all():
            if experiment.end_date > today:
                continue
            # Conditional write so a concurrent end reflection is never overwritten
            rows = db.query(Experiment).filter(
                and_(
                    Experiment.id == experiment.id,
                    Experiment.status == ExperimentStatus.ACTIVE
                )
            ).update(
                {"status": ExperimentStatus.COMPLETED, "completed_at": now},
                synchronize_session="fetch"
            )
            if rows:
                completed += 1
                self.logger.info(f"_complete_expired: Completed - experiment: {experiment.id}, ended: {experiment.end_date}")
        return completed

    def _new_experiment(
        self,
        user_id: str,
        name: str,
        description: Optional[str],
        duration_value: int,
        duration_unit: DurationUnit,
        start_date: date,
        source_experiment_id: Optional[str] = None,
    ) -> Experiment:
        duration_days = duration_in_days(duration_value, duration_unit)
        if duration_days <= 0:
            raise InvalidInput("Duration must be positive", duration_value=duration_value)
        return Experiment(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=name,
            description=description,
            duration_value=duration_value,
            duration_unit=DurationUnit(duration_unit),
            duration_days=duration_days,
            start_date=start_date,
            status=ExperimentStatus.ACTIVE,
            completed_at=None,
            source_experiment_id=source_experiment_id,
        )
