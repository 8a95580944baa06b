"""
Transition outcomes, engine messages and step rendering.

This module defines the reserved pseudo-states of the step graph, the fixed
texts the engine adds around step messages and the rendering of a step into
a ChatbotResponse.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from models.schemas import ChatbotResponse, Session, StepDefinition

# Reserved pseudo-states returned by transition resolution
VALIDATION_ERROR_STEP_ID = "validation_error"
ERROR_STEP_ID = "error"


class TurnOutcome(str, Enum):
    """How a turn was resolved"""
    ADVANCED = "advanced"
    MENU_REPEATED = "menu_repeated"
    BACK = "back"
    BACK_REJECTED = "back_rejected"
    RESTARTED = "restarted"
    DEBOUNCED = "debounced"
    VALIDATION_FAILED = "validation_failed"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    SIDE_EFFECT_FAILED = "side_effect_failed"
    UNRESOLVED_TRANSITION = "unresolved_transition"
    ERROR_STEP = "error_step"
    STEP_MISSING = "step_missing"


class FlowMessages:
    """Fixed texts the engine produces on its own"""

    DEBOUNCE = "⏱️ Please wait a moment before sending another message."
    BACK_BANNER = "⬅️ *Going back...*"
    RESTART_BANNER = "🔄 *Restarting conversation...*"
    CANNOT_GO_BACK = (
        "⚠️ It is not possible to go back any further. You are already at the beginning.\n\n"
        "Let's continue from here:"
    )
    TOO_MANY_ATTEMPTS = "🚫 Too many invalid attempts. Let's start over from the beginning."
    GENERIC_FAILURE = "❌ Sorry, something went wrong. Let's start over."
    INVALID_OPTION = "❌ Invalid option."

    FIRST_ATTEMPT_HINT = "Please type one of the listed options."
    SECOND_ATTEMPT_HINT = "⚠️ Attention: type only the *number* of the desired option."
    FINAL_ATTEMPT_HINT = "🚨 Last attempt! Use only the option numbers."

    BACK_HINT = "0. back"
    RESTART_HINT = "#. restart"

    @classmethod
    def validation_error(cls, attempts: int, reason: Optional[str] = None) -> str:
        """Build the retry message for the given failed attempt count"""
        message = reason or cls.INVALID_OPTION

        if attempts <= 1:
            hint = cls.FIRST_ATTEMPT_HINT
        elif attempts == 2:
            hint = cls.SECOND_ATTEMPT_HINT
        else:
            hint = cls.FINAL_ATTEMPT_HINT

        return f"{message}\n\n{hint}"

    @staticmethod
    def with_banner(banner: str, text: str) -> str:
        return f"{banner}\n\n{text}"


class StepRenderer:
    """Turns a step definition into the reply shown to the user"""

    @staticmethod
    def render_options(step: StepDefinition) -> List[str]:
        rendered = [f"{index}. {option.label}" for index, option in enumerate(step.options, start=1)]
        if step.allow_back:
            rendered.append(FlowMessages.BACK_HINT)
        if step.allow_restart:
            rendered.append(FlowMessages.RESTART_HINT)
        return rendered

    @classmethod
    def render(cls, step: StepDefinition, session: Optional[Session] = None,
               banner: Optional[str] = None,
               outcome: Optional[TurnOutcome] = None) -> ChatbotResponse:
        """
        Render a step.

        Args:
            step: Step to show
            session: Session resting on the step, used for terminal data
            banner: Optional text placed above the step message
            outcome: Turn outcome recorded in the response data
        """
        text = step.display_text
        if banner:
            text = FlowMessages.with_banner(banner, text)

        data: Dict[str, Any] = {"step_id": step.id}
        if outcome is not None:
            data["outcome"] = outcome.value
        if step.terminal and session is not None:
            data["context"] = dict(session.context_data)

        return ChatbotResponse(
            text=text,
            options=cls.render_options(step),
            terminal=step.terminal,
            data=data,
        )

    @staticmethod
    def notice(text: str, outcome: TurnOutcome, step_id: Optional[str] = None) -> ChatbotResponse:
        """A reply that is not a step rendering"""
        data: Dict[str, Any] = {"outcome": outcome.value}
        if step_id is not None:
            data["step_id"] = step_id
        return ChatbotResponse(text=text, data=data)
