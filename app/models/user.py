from sqlalchemy import Column, String, DateTime, Time
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.core.config import settings
from datetime import datetime, time
import enum


class Tier(str, enum.Enum):
    FREE = "free"
    PAID = "paid"


def default_reminder_time() -> time:
    return time(hour=settings.default_reminder_hour)


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)  # Firebase UID
    email = Column(String, unique=True, index=True, nullable=True)
    tier = Column(String, nullable=False, default=Tier.FREE.value, index=True)  # 'free', 'paid'
    reminder_time = Column(Time, nullable=False, default=default_reminder_time)
    notification_token = Column(String, nullable=True)  # FCM device token
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    experiments = relationship("Experiment", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_paid(self) -> bool:
        return self.tier == Tier.PAID.value
