"""
Error classes for the sequence engine.

Dispatchers raise these and the runner turns them into a failed StepResult:
- StepConfigurationError: a mandatory field is missing, no call was made
- DispatchError: the outbound call was attempted and did not succeed

Neither is retried. Side effects of a call that raised DispatchError may or
may not have happened on the remote system.
"""


class MeopError(Exception):
    """Base exception for meop."""
    pass


class StepConfigurationError(MeopError):
    """Step config is incomplete; raised before any outbound call."""
    pass


class DispatchError(MeopError):
    """
    Outbound call failed.

    Examples:
    - Non-2xx response from a relay
    - Connection refused / DNS failure
    - Per-dispatch timeout expired
    """
    pass


class SequenceNotFoundError(MeopError):
    """No sequence stored under the requested id."""
    pass


class ExecutionNotFoundError(MeopError):
    """No execution stored under the requested id."""
    pass


class ExecutionStateError(MeopError):
    """Execution status may only move forward from ``running``."""
    pass
