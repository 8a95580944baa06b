"""Conversation orchestration components"""

from .step_registry import StepRegistry
from .transitions import (
    ERROR_STEP_ID,
    VALIDATION_ERROR_STEP_ID,
    FlowMessages,
    StepRenderer,
    TurnOutcome,
)
from .flow_controller import ConversationFlowController

__all__ = [
    'StepRegistry',
    'ERROR_STEP_ID',
    'VALIDATION_ERROR_STEP_ID',
    'FlowMessages',
    'StepRenderer',
    'TurnOutcome',
    'ConversationFlowController',
]
