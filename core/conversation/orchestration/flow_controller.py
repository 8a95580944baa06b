"""
Conversation flow controller that processes one user turn at a time.

This module coordinates input sanitizing, debounce and control keywords,
step validation, step actions, transition resolution and the retry/reset
policy. Every turn ends in a rendered ChatbotResponse; faults are mapped to
recovery replies and never propagate to the caller.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import logging

from models.schemas import ChatbotResponse, Session, StepDefinition
from ..context.storage import ConversationStore
from ..errors import SideEffectError, UnresolvedTransitionError
from ..pipeline.validators import ControlCommand, InputValidator
from .step_registry import StepRegistry
from .transitions import (
    ERROR_STEP_ID,
    VALIDATION_ERROR_STEP_ID,
    FlowMessages,
    StepRenderer,
    TurnOutcome,
)

logger = logging.getLogger(__name__)

TurnListener = Callable[[str, ChatbotResponse], None]


class ConversationFlowController:
    """
    Drives the step graph for every user.

    The controller owns no state of its own besides its collaborators: the
    step registry and the conversation store are constructed once and
    injected.
    """

    def __init__(self, registry: StepRegistry, store: ConversationStore,
                 debounce_window_ms: float = 2000, max_attempts: int = 3,
                 max_message_length: int = InputValidator.MAX_MESSAGE_LENGTH,
                 service_name: str = "ChatbotService"):
        if registry.initial_step_id != store.config.initial_step_id:
            raise ValueError(
                f"Registry starts at '{registry.initial_step_id}' but the store "
                f"starts sessions at '{store.config.initial_step_id}'"
            )
        self.registry = registry
        self.store = store
        self.debounce_window_ms = debounce_window_ms
        self.max_attempts = max_attempts
        self.max_message_length = max_message_length
        self.service_name = service_name
        self._listeners: List[TurnListener] = []

    @classmethod
    def from_settings(cls, registry: StepRegistry, store: ConversationStore,
                      settings) -> "ConversationFlowController":
        return cls(
            registry,
            store,
            debounce_window_ms=settings.DEBOUNCE_WINDOW_MS,
            max_attempts=settings.MAX_ATTEMPTS,
            max_message_length=settings.MAX_MESSAGE_LENGTH,
            service_name=settings.SERVICE_NAME,
        )

    def add_listener(self, listener: TurnListener) -> None:
        """Register a callback run after each turn's state is applied"""
        self._listeners.append(listener)

    def process_turn(self, user_id: str, raw_text: str) -> ChatbotResponse:
        """
        Process one inbound message.

        Args:
            user_id: Stable identifier of the sender
            raw_text: Message as received from the transport

        Returns:
            The reply to send back
        """
        if not user_id:
            raise ValueError("user_id is required")

        message = InputValidator.sanitize(raw_text, self.max_message_length)

        with self.store.user_lock(user_id):
            try:
                response = self._process_locked(user_id, message)
            except Exception as e:
                logger.error(
                    f"Unexpected error processing message for user {user_id}: {str(e)}",
                    exc_info=True,
                )
                response = self._reset_with_error(user_id, TurnOutcome.SIDE_EFFECT_FAILED)

        logger.info(
            "Turn processed",
            extra={
                "user_id": user_id,
                "outcome": (response.data or {}).get("outcome"),
                "step_id": (response.data or {}).get("step_id"),
            },
        )
        self._notify(user_id, response)
        return response

    def _process_locked(self, user_id: str, message: str) -> ChatbotResponse:
        self.store.log_incoming(user_id, message)
        session = self.store.get(user_id)

        if self.store.is_debounced(user_id, self.debounce_window_ms):
            logger.debug(f"Message ignored by debounce: user {user_id}")
            return StepRenderer.notice(
                FlowMessages.DEBOUNCE,
                TurnOutcome.DEBOUNCED,
                step_id=session.current_step_id,
            )

        step = self.registry.get(session.current_step_id)

        # Control keywords work on every step; with nothing to go back to, a
        # step without back support treats "0" as ordinary input
        command = InputValidator.classify_control(message)
        if command == ControlCommand.RESTART:
            return self._handle_restart(user_id)
        if command == ControlCommand.BACK and (session.history or (step is not None and step.allow_back)):
            return self._handle_back(user_id, session)

        return self._handle_normal(user_id, message, session, step)

    def _handle_normal(self, user_id: str, message: str, session: Session,
                       step: Optional[StepDefinition]) -> ChatbotResponse:
        if step is None:
            logger.error(f"Step not found: {session.current_step_id} for user {user_id}")
            return self._recover_to_initial(user_id, TurnOutcome.STEP_MISSING)

        # An unrecognized first message just shows the menu again
        if (step.id == self.registry.initial_step_id and not session.history
                and not InputValidator.is_positive_integer(message)):
            return self._reply(user_id, StepRenderer.render(step, session, outcome=TurnOutcome.MENU_REPEATED))

        if step.validation is not None:
            result = InputValidator.validate(message, step.validation)
            if not result.accepted:
                return self._handle_invalid(user_id, step, result.reason_text)

        try:
            if step.side_effect is not None:
                step.side_effect(message, session)
            target = self.registry.resolve_transition(step, message, session)
        except Exception as e:
            error = SideEffectError(step.id, e)
            logger.error(f"{error}: {str(e)}", extra={"user_id": user_id}, exc_info=True)
            return self._reset_with_error(user_id, TurnOutcome.SIDE_EFFECT_FAILED)

        if target == VALIDATION_ERROR_STEP_ID:
            return self._handle_invalid(user_id, step, None)

        if target == ERROR_STEP_ID:
            logger.warning(f"Step {step.id} resolved to the error state for user {user_id}")
            return self._reset_with_error(user_id, TurnOutcome.ERROR_STEP)

        next_step = self.registry.get(target) if isinstance(target, str) else None
        if next_step is None:
            logger.warning(str(UnresolvedTransitionError(step.id, target)), extra={"user_id": user_id})
            return self._recover_to_initial(user_id, TurnOutcome.UNRESOLVED_TRANSITION)

        session = self.store.move_to(user_id, next_step.id)
        return self._reply(user_id, StepRenderer.render(next_step, session, outcome=TurnOutcome.ADVANCED))

    def _handle_back(self, user_id: str, session: Session) -> ChatbotResponse:
        if not self.store.go_back(user_id):
            return self._reply(user_id, StepRenderer.notice(
                FlowMessages.CANNOT_GO_BACK,
                TurnOutcome.BACK_REJECTED,
                step_id=session.current_step_id,
            ))

        session = self.store.get(user_id)
        step = self.registry.get(session.current_step_id)
        if step is None:
            logger.error(f"Step not found after going back: {session.current_step_id}")
            return self._recover_to_initial(user_id, TurnOutcome.STEP_MISSING)

        return self._reply(user_id, StepRenderer.render(
            step, session, banner=FlowMessages.BACK_BANNER, outcome=TurnOutcome.BACK
        ))

    def _handle_restart(self, user_id: str) -> ChatbotResponse:
        session = self.store.restart(user_id)
        return self._reply(user_id, self._initial_response(
            session, FlowMessages.RESTART_BANNER, TurnOutcome.RESTARTED
        ))

    def _handle_invalid(self, user_id: str, step: StepDefinition,
                        reason: Optional[str]) -> ChatbotResponse:
        """Count a failed attempt and either ask again or start over"""
        attempts = self.store.increment_attempts(user_id)

        if attempts >= self.max_attempts:
            logger.warning(
                f"User {user_id} exceeded maximum attempts ({attempts})",
                extra={"user_id": user_id, "step_id": step.id},
            )
            session = self.store.restart(user_id)
            return self._reply(user_id, self._initial_response(
                session, FlowMessages.TOO_MANY_ATTEMPTS, TurnOutcome.ATTEMPTS_EXHAUSTED
            ))

        response = StepRenderer.notice(
            FlowMessages.validation_error(attempts, reason),
            TurnOutcome.VALIDATION_FAILED,
            step_id=step.id,
        )
        response.options = StepRenderer.render_options(step)
        response.data["attempts"] = attempts
        return self._reply(user_id, response)

    def _reset_with_error(self, user_id: str, outcome: TurnOutcome) -> ChatbotResponse:
        """Start over after a fault, showing the error step when one is registered"""
        session = self.store.restart(user_id)
        error_step = self.registry.get(ERROR_STEP_ID)
        if error_step is not None:
            return self._reply(user_id, StepRenderer.render(error_step, session, outcome=outcome))
        return self._reply(user_id, self._initial_response(session, FlowMessages.GENERIC_FAILURE, outcome))

    def _recover_to_initial(self, user_id: str, outcome: TurnOutcome) -> ChatbotResponse:
        session = self.store.restart(user_id)
        return self._reply(user_id, self._initial_response(session, None, outcome))

    def _initial_response(self, session: Session, banner: Optional[str],
                          outcome: TurnOutcome) -> ChatbotResponse:
        initial = self.registry.initial_step
        if initial is None:
            logger.error(f"Initial step '{self.registry.initial_step_id}' is not registered")
            return StepRenderer.notice(banner or FlowMessages.GENERIC_FAILURE, outcome)
        return StepRenderer.render(initial, session, banner=banner, outcome=outcome)

    def _reply(self, user_id: str, response: ChatbotResponse) -> ChatbotResponse:
        """Record an outgoing reply unless it repeats one of the last two"""
        if self.store.is_repeated_outgoing(user_id, response.text):
            logger.debug(f"Repeated message not logged for user {user_id}")
        else:
            self.store.log_outgoing(user_id, response.text)
        return response

    def _notify(self, user_id: str, response: ChatbotResponse) -> None:
        for listener in list(self._listeners):
            try:
                listener(user_id, response)
            except Exception as e:
                logger.error(
                    f"Turn listener {getattr(listener, '__name__', listener)!r} failed: {str(e)}",
                    extra={"user_id": user_id},
                    exc_info=True,
                )

    def get_statistics(self) -> Dict[str, Any]:
        """Get store and registry statistics"""
        return {
            **self.store.stats(),
            "totalSteps": len(self.registry),
            "service": self.service_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
