import httpx
from sqlalchemy.orm import Session
from app.core.config import settings
from app.core.firebase import get_fcm_access_token
from app.core.locks import claim_reminder, release_reminder
from app.models.experiment import Experiment
from app.models.fcm_notification import (
    ReminderNotificationData,
    FCMMessage,
    FCMAndroidConfig,
    FCMApnsConfig
)
from app.models.user import User
from app.services.user_service import UserService
from datetime import date
from typing import Optional
import logging

logger = logging.getLogger(__name__)


def build_reminder_data(user: User, experiments: list[Experiment], day: date) -> ReminderNotificationData:
    """Create the data-only payload for a check-in reminder"""
    if len(experiments) == 1:
        body = f"Did you {experiments[0].name} today?"
    else:
        body = f"Time to check in on {len(experiments)} experiments"

    return ReminderNotificationData(
        user_id=user.id,
        experiment_ids=",".join(experiment.id for experiment in experiments),
        check_in_date=day.isoformat(),
        title="Tiny Experiments check-in",
        body=body
    )


class FCMService:
    """Delivers reminder pairs produced by the reminder tick over the FCM HTTP v1 API"""

    def __init__(self):
        self.firebase_project_id = settings.firebase_project_id
        self.fcm_url = f"https://fcm.googleapis.com/v1/projects/{self.firebase_project_id}/messages:send"
        self.user_service = UserService()
        self._access_token: Optional[str] = None
        self.logger = logging.getLogger(__name__)

    def _get_access_token(self) -> str:
        # One OAuth2 token per service instance (per tick)
        if self._access_token is None:
            self._access_token = get_fcm_access_token()
        return self._access_token

    async def send_reminder(
        self,
        db: Session,
        user: User,
        experiments: list[Experiment],
        day: date,
        hour: int
    ) -> bool:
        """
        Send a check-in reminder to the user's device.

        Each (user, day, hour) is claimed in Redis before sending, so a tick
        that overlaps or repeats an earlier one does not notify twice.

        Returns:
            True if a notification was delivered, False if skipped or failed
        """
        self.logger.info(f"send_reminder: Entry - user: {user.id}, experiments: {len(experiments)}, day: {day}, hour: {hour}")

        if not user.notification_token:
            self.logger.warning(f"send_reminder: No FCM token for user: {user.id}")
            return False

        if not claim_reminder(user.id, day, hour):
            self.logger.info(f"send_reminder: Already sent - user: {user.id}, day: {day}, hour: {hour}")
            return False

        notification_data = build_reminder_data(user, experiments, day)
        fcm_message = FCMMessage(
            token=user.notification_token,
            data={k: str(v) for k, v in notification_data.model_dump().items() if v is not None},
            android=FCMAndroidConfig(priority="high"),
            apns=FCMApnsConfig()
        )

        try:
            access_token = self._get_access_token()
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.fcm_url,
                    headers={
                        "Authorization": f"Bearer {access_token}",
                        "Content-Type": "application/json"
                    },
                    json={"message": fcm_message.model_dump(exclude_none=True)},
                    timeout=30.0
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            # 404/400 mean the token is gone; forget it so later ticks skip the user
            if e.response.status_code in [404, 400]:
                self.logger.warning(f"send_reminder: Invalid token for user: {user.id}, removing")
                self.user_service.clear_notification_token(db, user)
            else:
                self.logger.error(f"send_reminder: Failed for user: {user.id}, error: {e}")
                release_reminder(user.id, day, hour)
            return False
        except Exception as e:
            self.logger.error(f"send_reminder: Failed for user: {user.id}, error: {e}")
            release_reminder(user.id, day, hour)
            return False

        self.logger.info(f"send_reminder: Success - user: {user.id}")
        return True
