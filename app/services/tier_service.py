from sqlalchemy.orm import Session
from sqlalchemy import and_, func
from sqlalchemy.exc import OperationalError
from app.core.config import settings
from app.core.errors import StoreUnavailable
from app.models.experiment import Experiment, ExperimentStatus
from app.models.user import User
import logging

logger = logging.getLogger(__name__)

UNLIMITED = -1


class TierService:
    """Active-experiment limit per user tier (free: capped, paid: unlimited)"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def get_limit(self, user: User) -> int:
        """Maximum number of active experiments for the user's tier (-1 = unlimited)"""
        if user.is_paid:
            return UNLIMITED
        return settings.free_tier_max_active_experiments

    def count_active_experiments(self, db: Session, user_id: str) -> int:
        return db.query(func.count(Experiment.id)).filter(
            and_(
                Experiment.user_id == user_id,
                Experiment.status == ExperimentStatus.ACTIVE
            )
        ).scalar() or 0

    def can_create_experiment(self, db: Session, user: User) -> bool:
        """
        Check whether the user may start another experiment.

        Paid users always may. Free users may while they have fewer active
        experiments than the free limit. The caller is expected to hold the
        per-user create lock so the count and the insert see the same state.
        """
        self.logger.info(f"can_create_experiment: Entry - user: {user.id}, tier: {user.tier}")

        try:
            limit = self.get_limit(user)
            if limit == UNLIMITED:
                self.logger.info(f"can_create_experiment: Unlimited - user: {user.id}")
                return True

            active_count = self.count_active_experiments(db, user.id)
            allowed = active_count < limit
            self.logger.info(
                f"can_create_experiment: Success - user: {user.id}, active: {active_count}/{limit}, allowed: {allowed}"
            )
            return allowed
        except OperationalError as e:
            self.logger.error(f"can_create_experiment: Failure - {e}")
            raise StoreUnavailable("Experiment store unavailable", operation="can_create_experiment") from e

    def get_tier_status(self, db: Session, user: User) -> dict:
        """Tier, active count and remaining slots, for the client's upgrade prompt"""
        self.logger.info(f"get_tier_status: Entry - user: {user.id}")

        try:
            limit = self.get_limit(user)
            active_count = self.count_active_experiments(db, user.id)
        except OperationalError as e:
            self.logger.error(f"get_tier_status: Failure - {e}")
            raise StoreUnavailable("Experiment store unavailable", operation="get_tier_status") from e

        result = {
            'tier': user.tier,
            'active_experiments': active_count,
            'limit': limit,
            'remaining': max(0, limit - active_count) if limit != UNLIMITED else UNLIMITED,
            'unlimited': limit == UNLIMITED,
            'can_create': limit == UNLIMITED or active_count < limit,
        }
        self.logger.info(f"get_tier_status: Success - user: {user.id}")
        return result
