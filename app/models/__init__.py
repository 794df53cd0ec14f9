from app.models.user import User, Tier
from app.models.experiment import Experiment, ExperimentStatus, DurationUnit
from app.models.check_in import CheckIn
from app.models.reflection import Reflection, NextAction

__all__ = ["User", "Tier", "Experiment", "ExperimentStatus", "DurationUnit", "CheckIn", "Reflection", "NextAction"]
