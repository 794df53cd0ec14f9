from sqlalchemy.orm import Session
from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError, OperationalError
from app.core.clock import Clock, get_clock
from app.core.errors import ExperimentNotActive, OutOfWindow, StoreUnavailable
from app.core.locks import experiment_lock
from app.models.check_in import CheckIn
from app.models.experiment import Experiment, ExperimentStatus
from app.services.experiment_service import ExperimentService
from datetime import date, timedelta
from typing import Iterable, Optional
import uuid
import logging

logger = logging.getLogger(__name__)


def compute_streak(check_ins: Iterable[CheckIn], start_date: date) -> int:
    """
    Count consecutive completed days ending at the most recent check-in.

    Stops at the first day that is missing, marked not completed, or before
    the experiment start date.
    """
    completed_by_date = {c.check_in_date: c.completed for c in check_ins}
    if not completed_by_date:
        return 0

    day = max(completed_by_date)
    streak = 0
    while day >= start_date and completed_by_date.get(day) is True:
        streak += 1
        day -= timedelta(days=1)
    return streak


class CheckInService:
    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or get_clock()
        self.experiment_service = ExperimentService(clock=self.clock)
        self.logger = logging.getLogger(__name__)

    def record_check_in(
        self,
        db: Session,
        experiment: Experiment,
        check_in_date: date,
        completed: bool,
        note: Optional[str] = None
    ) -> CheckIn:
        """
        Record whether the habit was done on a given day.

        A second call for the same day replaces the first (last write wins),
        so a quick yes/no from a notification can be edited later with a note.

        Raises:
            ExperimentNotActive: experiment is completed
            OutOfWindow: date outside [start_date, start_date + duration) or after today
        """
        self.logger.info(
            f"record_check_in: Entry - experiment: {experiment.id}, date: {check_in_date}, completed: {completed}"
        )

        with experiment_lock(experiment.id):
            try:
                experiment = self.experiment_service.load_for_update(db, experiment.id)

                error = None
                if experiment.status != ExperimentStatus.ACTIVE:
                    error = ExperimentNotActive(
                        "Experiment is completed and accepts no check-ins",
                        experiment_id=experiment.id
                    )
                elif not experiment.in_window(check_in_date) or check_in_date > self.clock.today():
                    # Days that have not happened yet cannot be checked in
                    error = OutOfWindow(
                        "Check-in date is outside the experiment window or in the future",
                        experiment_id=experiment.id,
                        check_in_date=check_in_date,
                        start_date=experiment.start_date,
                        end_date=experiment.end_date,
                    )
                if error is not None:
                    # Release the row lock before reporting
                    db.rollback()
                    raise error

                try:
                    check_in = self._upsert(db, experiment.id, check_in_date, completed, note)
                    db.commit()
                except IntegrityError:
                    # Lost an insert race for the same day without the lock; the row exists now
                    db.rollback()
                    self.logger.warning(f"record_check_in: Insert race, retrying as update - experiment: {experiment.id}")
                    check_in = self._upsert(db, experiment.id, check_in_date, completed, note)
                    db.commit()

                db.refresh(check_in)
            except OperationalError as e:
                db.rollback()
                self.logger.error(f"record_check_in: Failure - {e}")
                raise StoreUnavailable("Experiment store unavailable", operation="record_check_in") from e

        self.logger.info(f"record_check_in: Success - experiment: {experiment.id}, date: {check_in_date}")
        return check_in

    def list_check_ins(self, db: Session, experiment: Experiment) -> list[CheckIn]:
        return db.query(CheckIn).filter(
            CheckIn.experiment_id == experiment.id
        ).order_by(CheckIn.check_in_date).all()

    def current_streak(self, db: Session, experiment: Experiment) -> int:
        return compute_streak(self.list_check_ins(db, experiment), experiment.start_date)

    def _upsert(
        self,
        db: Session,
        experiment_id: str,
        check_in_date: date,
        completed: bool,
        note: Optional[str]
    ) -> CheckIn:
        check_in = db.query(CheckIn).filter(
            and_(
                CheckIn.experiment_id == experiment_id,
                CheckIn.check_in_date == check_in_date
            )
        ).first()

        if not check_in:
            check_in = CheckIn(
                id=str(uuid.uuid4()),
                experiment_id=experiment_id,
                check_in_date=check_in_date,
            )
            db.add(check_in)

        check_in.completed = completed
        check_in.note = note
        check_in.recorded_at = self.clock.now()
        db.flush()
        return check_in
