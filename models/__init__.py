"""Clinical encounter simulation models package.

This package contains the session aggregate and the components that drive
it: the virtual clock, event scheduling, physiology, clinical actions,
assessment, and the lifecycle manager that sequences them.
"""

from models.clock import TimeFlowMode, VirtualClock
from models.event import TimeEvent
from models.patient import PatientState, VitalSigns
from models.scheduler import EventScheduler
from models.physiology import DiseaseModelRegistry, PhysiologyEngine
from models.actions import ActionProcessor, MedicalAction
from models.assessment import AssessmentEngine
from models.session import Session, SessionStatus, UserRole
from models.simulation import SessionLifecycleManager, SessionLockTable

__all__ = [
    "TimeFlowMode",
    "VirtualClock",
    "TimeEvent",
    "PatientState",
    "VitalSigns",
    "EventScheduler",
    "DiseaseModelRegistry",
    "PhysiologyEngine",
    "ActionProcessor",
    "MedicalAction",
    "AssessmentEngine",
    "Session",
    "SessionStatus",
    "UserRole",
    "SessionLifecycleManager",
    "SessionLockTable",
]
