"""Session orchestration, break timing and command dispatch."""

from .breaks import BreakDecision, BreakDecisionEngine, BreakService
from .classifier import IntentClassifier
from .dispatcher import CommandDispatcher
from .executor import Completed, ExecutionError, TimedOut, TimeoutBoundedExecutor
from .intents import CommandKind, Intent, IntentAction
from .meetings import MeetingOracle
from .productivity import ProductivityService
from .responses import Response
from .sessions import SessionStateMachine

__all__ = [
    "BreakDecision",
    "BreakDecisionEngine",
    "BreakService",
    "CommandDispatcher",
    "CommandKind",
    "Completed",
    "ExecutionError",
    "Intent",
    "IntentAction",
    "IntentClassifier",
    "MeetingOracle",
    "ProductivityService",
    "Response",
    "SessionStateMachine",
    "TimedOut",
    "TimeoutBoundedExecutor",
]
