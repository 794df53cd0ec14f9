from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError
from app.core.errors import NotFound, InvalidInput, StoreUnavailable
from app.models.user import User, Tier
from datetime import time
from typing import Optional
import logging

logger = logging.getLogger(__name__)

_UNSET = object()


class UserService:
    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def get_user(self, db: Session, user_id: str) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFound("User not found", user_id=user_id)
        return user

    def get_or_create_user(self, db: Session, user_id: str, email: Optional[str] = None) -> User:
        """Return the user's profile, creating a free-tier profile on first sign-in

        Args:
            user_id: Firebase UID
            email: Email from the Firebase token, if any
        """
        self.logger.info(f"get_or_create_user: Entry - user: {user_id}")

        try:
            user = db.query(User).filter(User.id == user_id).first()
            if user:
                self.logger.info(f"get_or_create_user: Success (existing) - user: {user_id}")
                return user

            user = User(id=user_id, email=email, tier=Tier.FREE.value)
            db.add(user)
            db.commit()
            db.refresh(user)
            self.logger.info(f"get_or_create_user: Success (created) - user: {user_id}")
            return user
        except OperationalError as e:
            db.rollback()
            self.logger.error(f"get_or_create_user: Failure - {e}")
            raise StoreUnavailable("Experiment store unavailable", operation="get_or_create_user") from e

    def update_preferences(
        self,
        db: Session,
        user_id: str,
        reminder_time: Optional[time] = None,
        notification_token=_UNSET,
    ) -> User:
        """Update reminder time of day and/or the FCM token

        Args:
            user_id: Firebase UID
            reminder_time: Preferred time of day for the daily reminder
            notification_token: FCM token; None clears it (on logout)
        """
        self.logger.info(f"update_preferences: Entry - user: {user_id}")

        user = self.get_user(db, user_id)
        try:
            if reminder_time is not None:
                user.reminder_time = reminder_time
            if notification_token is not _UNSET:
                user.notification_token = notification_token or None
            db.commit()
            db.refresh(user)
            self.logger.info(f"update_preferences: Success - user: {user_id}")
            return user
        except OperationalError as e:
            db.rollback()
            self.logger.error(f"update_preferences: Failure - {e}")
            raise StoreUnavailable("Experiment store unavailable", operation="update_preferences") from e

    def set_tier(self, db: Session, user: User, tier: str) -> User:
        """Change the user's tier. Called by the payment side only, never by the experiment core."""
        self.logger.info(f"set_tier: Entry - user: {user.id}, tier: {tier}")

        try:
            tier = Tier(tier).value
        except ValueError:
            raise InvalidInput(f"Unknown tier: {tier}", tier=tier)

        try:
            user.tier = tier
            db.commit()
            self.logger.info(f"set_tier: Success - user: {user.id}, tier: {tier}")
            return user
        except OperationalError as e:
            db.rollback()
            self.logger.error(f"set_tier: Failure - {e}")
            raise StoreUnavailable("Experiment store unavailable", operation="set_tier") from e

    def clear_notification_token(self, db: Session, user: User):
        """Drop a token FCM rejected as invalid"""
        self.logger.info(f"clear_notification_token: Entry - user: {user.id}")

        try:
            user.notification_token = None
            db.commit()
            self.logger.info(f"clear_notification_token: Success - user: {user.id}")
        except OperationalError as e:
            db.rollback()
            self.logger.error(f"clear_notification_token: Failure - {e}")
            raise StoreUnavailable("Experiment store unavailable", operation="clear_notification_token") from e
