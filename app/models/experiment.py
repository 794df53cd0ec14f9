from sqlalchemy import Column, String, Integer, Date, DateTime, Enum, ForeignKey, Text, CheckConstraint
from sqlalchemy.orm import relationship
from app.core.database import Base
from datetime import datetime, date, timedelta
import enum


class ExperimentStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class DurationUnit(str, enum.Enum):
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"


DAYS_PER_UNIT = {
    DurationUnit.DAYS: 1,
    DurationUnit.WEEKS: 7,
    DurationUnit.MONTHS: 30,
}


def duration_in_days(value: int, unit: DurationUnit) -> int:
    """Normalize a (value, unit) duration to a day count"""
    return value * DAYS_PER_UNIT[DurationUnit(unit)]


class Experiment(Base):
    __tablename__ = "experiments"
    __table_args__ = (
        CheckConstraint("duration_days > 0", name="ck_experiments_duration_positive"),
    )

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    duration_value = Column(Integer, nullable=False)
    duration_unit = Column(Enum(DurationUnit), nullable=False, default=DurationUnit.DAYS)
    duration_days = Column(Integer, nullable=False)
    start_date = Column(Date, nullable=False, index=True)
    status = Column(Enum(ExperimentStatus), nullable=False, default=ExperimentStatus.ACTIVE, index=True)
    completed_at = Column(DateTime, nullable=True)  # null while active
    source_experiment_id = Column(String, ForeignKey("experiments.id"), nullable=True)  # continued/modified from
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="experiments")
    check_ins = relationship(
        "CheckIn",
        back_populates="experiment",
        cascade="all, delete-orphan",
        order_by="CheckIn.check_in_date",
    )
    reflections = relationship(
        "Reflection",
        back_populates="experiment",
        cascade="all, delete-orphan",
        order_by="Reflection.created_at",
    )

    @property
    def end_date(self) -> date:
        """First date after the experiment window (exclusive bound)"""
        return self.start_date + timedelta(days=self.duration_days)

    def in_window(self, day: date) -> bool:
        return self.start_date <= day < self.end_date
