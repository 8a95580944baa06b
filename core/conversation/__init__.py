"""
Core conversation handling system.

This package provides a step-driven conversation engine with:
- A registry of declarative steps and their transitions
- Per-user session storage with backtracking, retries and expiry
- Input sanitizing, control keywords and validation rules
- A flow controller that turns one message into one reply
"""

from .errors import (
    ConversationFlowError,
    ContextDataError,
    SideEffectError,
    StepRegistrationError,
    UnresolvedTransitionError,
)
from .pipeline import ControlCommand, InputValidator
from .context import ConversationStore, StoreConfig
from .orchestration import (
    ConversationFlowController,
    FlowMessages,
    StepRegistry,
    StepRenderer,
    TurnOutcome,
)
from .default_flow import build_default_registry

__all__ = [
    # Errors
    'ConversationFlowError',
    'ContextDataError',
    'SideEffectError',
    'StepRegistrationError',
    'UnresolvedTransitionError',

    # Input
    'ControlCommand',
    'InputValidator',

    # Storage
    'ConversationStore',
    'StoreConfig',

    # Orchestration
    'ConversationFlowController',
    'FlowMessages',
    'StepRegistry',
    'StepRenderer',
    'TurnOutcome',

    # Default flow
    'build_default_registry',
]
