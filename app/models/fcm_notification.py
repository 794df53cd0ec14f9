from pydantic import BaseModel, Field
from typing import Literal, Optional, Dict, Any


class ReminderNotificationData(BaseModel):
    """Data payload for a daily check-in reminder"""
    type: Literal["experiment_reminder"] = Field(
        default="experiment_reminder",
        description="Type of notification"
    )
    user_id: str = Field(description="Owner of the experiments")
    experiment_ids: str = Field(description="Comma-separated ids of the experiments due for a check-in")
    check_in_date: str = Field(description="ISO date the reminder asks about")
    # Actions the app renders as notification buttons; each maps back to /notifications/action
    actions: str = Field(default="yes,no", description="Comma-separated notification actions")
    title: Optional[str] = Field(default=None, description="Notification title (for data-only notifications)")
    body: Optional[str] = Field(default=None, description="Notification body (for data-only notifications)")

    class Config:
        json_schema_extra = {
            "example": {
                "type": "experiment_reminder",
                "user_id": "firebase_uid_123",
                "experiment_ids": "exp_1,exp_2",
                "check_in_date": "2024-01-06",
                "actions": "yes,no",
                "title": "Time for your check-in",
                "body": "Did you Meditate today?"
            }
        }


class FCMAndroidConfig(BaseModel):
    """Android-specific FCM configuration"""
    priority: Literal["normal", "high"] = Field(default="high")
    notification: Optional[Dict[str, str]] = Field(
        default=None,
        description="Android notification channel configuration (only for notification messages)"
    )


class FCMApnsConfig(BaseModel):
    """iOS APNS-specific FCM configuration"""
    headers: Dict[str, str] = Field(
        default={"apns-priority": "10"},
        description="APNS headers"
    )
    payload: Dict[str, Any] = Field(
        default={
            "aps": {
                "content-available": 1,
                "sound": "default"
            }
        },
        description="APNS payload configuration"
    )


class FCMMessage(BaseModel):
    """Complete FCM message structure (data-only)"""
    token: str = Field(description="FCM device token")
    data: Dict[str, str] = Field(description="Custom data payload as string key-value pairs")
    android: FCMAndroidConfig = Field(default_factory=FCMAndroidConfig)
    apns: FCMApnsConfig = Field(default_factory=FCMApnsConfig)
