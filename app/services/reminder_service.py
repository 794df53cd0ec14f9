from sqlalchemy.orm import Session, contains_eager
from sqlalchemy import and_
from sqlalchemy.exc import OperationalError
from app.core.clock import Clock, get_clock
from app.core.errors import InvalidInput, StoreUnavailable
from app.models.experiment import Experiment, ExperimentStatus
from app.models.user import User
from datetime import date, time
from itertools import groupby
from typing import Iterator, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

DueReminder = Tuple[User, list[Experiment]]


class ReminderService:
    """Works out who is due for a daily check-in reminder; sending is left to the notifier"""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or get_clock()
        self.logger = logging.getLogger(__name__)

    def due_reminders(self, db: Session, current_hour: int, today: Optional[date] = None) -> Iterator[DueReminder]:
        """
        Yield (user, experiments) for every user whose reminder hour is current_hour
        and who has at least one active experiment running today.

        Reads persisted state only, so a repeated or late tick yields the same pairs.

        Raises:
            InvalidInput: current_hour outside 0-23 (raised on the call, not on iteration)
        """
        if not 0 <= current_hour <= 23:
            raise InvalidInput("Hour must be between 0 and 23", hour=current_hour)
        return self._iter_due(db, current_hour, today or self.clock.today())

    def _iter_due(self, db: Session, current_hour: int, today: date) -> Iterator[DueReminder]:
        self.logger.info(f"due_reminders: Entry - hour: {current_hour}, today: {today}")

        try:
            rows = db.query(Experiment).join(Experiment.user).options(
                contains_eager(Experiment.user)
            ).filter(
                and_(
                    Experiment.status == ExperimentStatus.ACTIVE,
                    Experiment.start_date <= today,
                    User.reminder_time >= time(current_hour),
                    User.reminder_time <= time(current_hour, 59, 59, 999999)
                )
            ).order_by(Experiment.user_id, Experiment.start_date, Experiment.id).all()
        except OperationalError as e:
            self.logger.error(f"due_reminders: Failure - {e}")
            raise StoreUnavailable("Experiment store unavailable", operation="due_reminders") from e

        due_users = 0
        for _, group in groupby(rows, key=lambda experiment: experiment.user_id):
            experiments = [experiment for experiment in group if experiment.in_window(today)]
            if not experiments:
                continue
            user = experiments[0].user
            due_users += 1
            yield user, experiments

        self.logger.info(f"due_reminders: Success - hour: {current_hour}, users: {due_users}")

    async def run_tick(self, db: Session, notifier, current_hour: Optional[int] = None) -> dict:
        """
        Hand every due (user, experiments) pair to the notifier.

        Args:
            notifier: object with async send_reminder(db, user, experiments, day, hour) -> bool
            current_hour: Hour to evaluate. Defaults to the clock's current hour.

        Returns:
            dict with users_due, sent and skipped counts
        """
        now = self.clock.now()
        hour = now.hour if current_hour is None else current_hour
        today = now.date()
        self.logger.info(f"run_tick: Entry - hour: {hour}, today: {today}")

        # Materialize first: the notifier commits, which would expire rows mid-iteration
        due = list(self.due_reminders(db, hour, today))

        summary = {'users_due': len(due), 'sent': 0, 'skipped': 0}
        for user, experiments in due:
            if await notifier.send_reminder(db, user, experiments, today, hour):
                summary['sent'] += 1
            else:
                summary['skipped'] += 1

        self.logger.info(f"run_tick: Success - hour: {hour}, {summary}")
        return summary
