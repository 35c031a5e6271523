"""meop: linear automation sequences for research and outbound messaging."""

from .contracts import RunRequest, ScheduleConfig, Sequence
from .dispatchers import build_default_dispatchers
from .normalize import load_sequence
from .persistence import Execution, StepResult, get_repository
from .runner import SequenceRunner
from .schedule import SequenceScheduler, should_run_now
from .transports import get_transport
from .worker import RunWorker, enqueue_run

__version__ = "0.1.0"
__all__ = [
    "Execution",
    "RunRequest",
    "RunWorker",
    "ScheduleConfig",
    "Sequence",
    "SequenceRunner",
    "SequenceScheduler",
    "StepResult",
    "build_default_dispatchers",
    "enqueue_run",
    "get_repository",
    "get_transport",
    "load_sequence",
    "should_run_now",
]
