"""
Error taxonomy for the conversation flow engine.

Only StepRegistrationError ever reaches a caller (the step author). The
remaining errors are raised inside a turn and mapped to a rendered reply by
the flow controller.
"""

from typing import Optional

from models.schemas import ContextDataError


class ConversationFlowError(Exception):
    """Base class for flow engine errors"""


class StepRegistrationError(ConversationFlowError, ValueError):
    """A step definition cannot be registered or removed"""


class UnresolvedTransitionError(ConversationFlowError):
    """A transition points at a step that is not registered"""

    def __init__(self, from_step: str, target: Optional[str]):
        self.from_step = from_step
        self.target = target
        super().__init__(f"Step '{from_step}' resolved to unknown step {target!r}")


class SideEffectError(ConversationFlowError):
    """A step action or computed target raised while handling a turn"""

    def __init__(self, step_id: str, cause: BaseException):
        self.step_id = step_id
        self.cause = cause
        super().__init__(f"Action of step '{step_id}' failed: {type(cause).__name__}")


__all__ = [
    'ConversationFlowError',
    'StepRegistrationError',
    'UnresolvedTransitionError',
    'SideEffectError',
    'ContextDataError',
]
