"""
Domain specialists the router can hand a turn to.
"""

from goalcoach.specialists.base import (
    Specialist,
    SlotFillingSpecialist,
    FlowPhase,
    FlowSnapshot,
)
from goalcoach.specialists.goal import GoalSpecialist
from goalcoach.specialists.task import TaskSpecialist
from goalcoach.specialists.fitness import FitnessSpecialist
from goalcoach.specialists.technical import TechnicalSpecialist

__all__ = [
    "Specialist",
    "SlotFillingSpecialist",
    "FlowPhase",
    "FlowSnapshot",
    "GoalSpecialist",
    "TaskSpecialist",
    "FitnessSpecialist",
    "TechnicalSpecialist",
]
