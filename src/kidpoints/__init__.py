"""KidPoints package: recurring kid tasks, a points ledger and reward redemptions."""

from .api import ApiExporter
from .bonus import BonusEvaluator
from .catalog import CatalogStore
from .completion import TaskCompletionProcessor
from .exceptions import (
    AlreadyCompletedError,
    AlreadyGrantedBonusError,
    ConcurrencyConflictError,
    DuplicateAssignmentError,
    InsufficientBalanceError,
    InvalidTransitionError,
    KidPointsError,
    NotEligibleError,
    NotFoundError,
    RecordInUseError,
)
from .generator import DailyTaskGenerator
from .ledger import PointsLedger
from .models import (
    BonusEligibility,
    BonusPeriod,
    LedgerEntryType,
    LedgerRef,
    Recurrence,
    RedemptionStatus,
    TaskStatus,
    TaskView,
)
from .ops import HealthMonitor, StructuredLogger
from .redemptions import RedemptionWorkflow
from .schedule import Weekday
from .service import KidPoints

__all__ = [
    "AlreadyCompletedError",
    "AlreadyGrantedBonusError",
    "ApiExporter",
    "BonusEligibility",
    "BonusEvaluator",
    "BonusPeriod",
    "CatalogStore",
    "ConcurrencyConflictError",
    "DailyTaskGenerator",
    "DuplicateAssignmentError",
    "HealthMonitor",
    "InsufficientBalanceError",
    "InvalidTransitionError",
    "KidPoints",
    "KidPointsError",
    "LedgerEntryType",
    "LedgerRef",
    "NotEligibleError",
    "NotFoundError",
    "PointsLedger",
    "Recurrence",
    "RecordInUseError",
    "RedemptionStatus",
    "RedemptionWorkflow",
    "StructuredLogger",
    "TaskCompletionProcessor",
    "TaskStatus",
    "TaskView",
    "Weekday",
]
