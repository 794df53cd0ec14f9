from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError
from app.core.clock import Clock, get_clock
from app.core.errors import AlreadyCompleted, InvalidInput, MissingNextAction, StoreUnavailable
from app.core.locks import experiment_lock
from app.models.experiment import Experiment, ExperimentStatus
from app.models.reflection import Reflection, NextAction
from app.services.experiment_service import ExperimentService, ExperimentOverrides
from dataclasses import dataclass
from typing import Optional
import uuid
import logging

logger = logging.getLogger(__name__)


@dataclass
class ReflectionOutcome:
    """Result of a reflection submission"""
    reflection: Reflection
    experiment: Experiment
    next_experiment: Optional[Experiment] = None


class ReflectionService:
    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or get_clock()
        self.experiment_service = ExperimentService(clock=self.clock)
        self.logger = logging.getLogger(__name__)

    def submit_reflection(
        self,
        db: Session,
        experiment: Experiment,
        content: str,
        is_end: bool = False,
        next_action: Optional[NextAction] = None,
        overrides: Optional[ExperimentOverrides] = None,
        start_new: bool = True,
    ) -> ReflectionOutcome:
        """
        Store a reflection and, for an end reflection, close the experiment.

        End reflections complete the experiment and then follow next_action:
        continue starts a copy today (unless start_new is False), modify starts
        a copy with any overrides applied (none means an unchanged copy), end
        stops there.

        Raises:
            AlreadyCompleted: experiment is completed; it accepts no more writes
            MissingNextAction: end reflection without next_action
            InvalidInput: next_action on a daily reflection
        """
        self.logger.info(
            f"submit_reflection: Entry - experiment: {experiment.id}, is_end: {is_end}, next_action: {next_action}"
        )

        if next_action is not None:
            next_action = NextAction(next_action)
        if is_end and next_action is None:
            raise MissingNextAction("An end reflection needs a next action", experiment_id=experiment.id)
        if not is_end and next_action is not None:
            raise InvalidInput("Only an end reflection takes a next action", experiment_id=experiment.id)

        with experiment_lock(experiment.id):
            try:
                experiment = self.experiment_service.load_for_update(db, experiment.id)
                if experiment.status != ExperimentStatus.ACTIVE:
                    db.rollback()
                    raise AlreadyCompleted("Experiment is already completed", experiment_id=experiment.id)

                now = self.clock.now()
                reflection = Reflection(
                    id=str(uuid.uuid4()),
                    experiment_id=experiment.id,
                    content=content,
                    is_end=is_end,
                    next_action=next_action,
                    created_at=now,
                )
                db.add(reflection)

                next_experiment = None
                if is_end:
                    self.experiment_service.mark_completed(db, experiment, completed_at=now)
                    if next_action == NextAction.CONTINUE and start_new:
                        next_experiment = self.experiment_service.start_follow_up(db, experiment)
                    elif next_action == NextAction.MODIFY:
                        next_experiment = self.experiment_service.start_follow_up(db, experiment, overrides)

                db.commit()
                db.refresh(reflection)
                db.refresh(experiment)
                if next_experiment is not None:
                    db.refresh(next_experiment)
            except OperationalError as e:
                db.rollback()
                self.logger.error(f"submit_reflection: Failure - {e}")
                raise StoreUnavailable("Experiment store unavailable", operation="submit_reflection") from e

        self.logger.info(
            f"submit_reflection: Success - experiment: {experiment.id}, reflection: {reflection.id}, "
            f"next_experiment: {next_experiment.id if next_experiment else None}"
        )
        return ReflectionOutcome(reflection=reflection, experiment=experiment, next_experiment=next_experiment)

    def list_reflections(self, db: Session, experiment: Experiment) -> list[Reflection]:
        return db.query(Reflection).filter(
            Reflection.experiment_id == experiment.id
        ).order_by(Reflection.created_at).all()
