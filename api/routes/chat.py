"""
Chat endpoints for the step-driven conversation engine.

Exposes the turn API, read-only session introspection, a forced restart
and step administration. The flow controller is built once by the
application factory and read from ``app.state``.
"""

from datetime import datetime, timezone
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from core.conversation import ConversationFlowController, StepRegistrationError
from models.schemas import ChatbotResponse

logger = logging.getLogger(__name__)

router = APIRouter()


class IncomingMessage(BaseModel):
    """Turn request model"""
    user_id: str = Field(min_length=1, max_length=128)
    message: str = Field(min_length=1)
    timestamp: Optional[datetime] = None


class ConversationStateResponse(BaseModel):
    user_id: str
    current_step_id: str
    history: List[str]
    attempts: int
    last_activity: datetime
    has_data: bool


class LoggedMessage(BaseModel):
    text: str
    direction: str
    timestamp: datetime


class MessageHistoryResponse(BaseModel):
    user_id: str
    message_count: int
    messages: List[LoggedMessage]


class StepSummary(BaseModel):
    id: str
    transition: str
    options: List[str]
    allow_back: bool
    allow_restart: bool
    terminal: bool


class StepListResponse(BaseModel):
    initial_step_id: str
    steps: List[StepSummary]


def get_flow_controller(request: Request) -> ConversationFlowController:
    return request.app.state.flow_controller


def _as_datetime(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


@router.post("/message", response_model=ChatbotResponse)
def process_message(payload: IncomingMessage,
                    controller: ConversationFlowController = Depends(get_flow_controller)):
    """Process one user message and return the reply"""
    logger.debug(
        "Message received",
        extra={"user_id": payload.user_id, "message_length": len(payload.message)},
    )
    return controller.process_turn(payload.user_id, payload.message)


@router.get("/conversation/{user_id}", response_model=ConversationStateResponse)
def get_conversation_state(user_id: str,
                           controller: ConversationFlowController = Depends(get_flow_controller)):
    """Get a user's position in the flow without touching it"""
    session = controller.store.peek(user_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"No conversation for user {user_id}")

    return ConversationStateResponse(
        user_id=session.user_id,
        current_step_id=session.current_step_id,
        history=list(session.history),
        attempts=session.attempts,
        last_activity=_as_datetime(session.last_activity),
        has_data=bool(session.context_data),
    )


@router.get("/conversation/{user_id}/history", response_model=MessageHistoryResponse)
def get_message_history(user_id: str,
                        controller: ConversationFlowController = Depends(get_flow_controller)):
    """Get the bounded message log of a user"""
    entries = controller.store.message_log(user_id)
    return MessageHistoryResponse(
        user_id=user_id,
        message_count=len(entries),
        messages=[
            LoggedMessage(
                text=entry.text,
                direction=entry.direction.value,
                timestamp=_as_datetime(entry.timestamp),
            )
            for entry in entries
        ],
    )


@router.post("/conversation/{user_id}/restart")
def restart_conversation(user_id: str,
                         controller: ConversationFlowController = Depends(get_flow_controller)):
    """Force a user back to the initial step"""
    controller.store.restart(user_id)
    logger.info(f"Conversation force-restarted for user {user_id}")
    return {"success": True, "message": "Conversation restarted"}


@router.get("/stats")
def get_statistics(controller: ConversationFlowController = Depends(get_flow_controller)):
    """Get aggregate engine statistics"""
    return controller.get_statistics()


@router.get("/health")
def health_check(request: Request):
    """Health check endpoint"""
    controller = get_flow_controller(request)
    settings = request.app.state.settings
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "reaper_running": controller.store.reaper_running,
    }


@router.get("/steps", response_model=StepListResponse)
def list_steps(controller: ConversationFlowController = Depends(get_flow_controller)):
    """List registered steps"""
    summaries = []
    for step_id in controller.registry.list_ids():
        step = controller.registry.get(step_id)
        if step is None:
            continue
        summaries.append(StepSummary(
            id=step.id,
            transition=step.transition.kind.value,
            options=[option.label for option in step.options],
            allow_back=step.allow_back,
            allow_restart=step.allow_restart,
            terminal=step.terminal,
        ))
    return StepListResponse(initial_step_id=controller.registry.initial_step_id, steps=summaries)


@router.delete("/steps/{step_id}")
def remove_step(step_id: str,
                controller: ConversationFlowController = Depends(get_flow_controller)):
    """Remove a step from the registry"""
    if step_id not in controller.registry:
        raise HTTPException(status_code=404, detail=f"Step {step_id} is not registered")

    try:
        controller.registry.remove(step_id)
    except StepRegistrationError as e:
        logger.warning(f"Step removal rejected: {str(e)}")
        raise HTTPException(status_code=400, detail=str(e))

    return {"success": True, "removed": step_id}
