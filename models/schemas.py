"""Data models for the step-driven chatbot"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# Values allowed inside a session's context data bag
Primitive = Union[str, int, float, bool, None]
PRIMITIVE_TYPES = (str, int, float, bool, type(None))


class ContextDataError(ValueError):
    """Raised when a step action writes an unsupported value into context data"""


class ValidationKind(str, Enum):
    """Kinds of input a step can require"""
    NUMBER = "number"
    TEXT = "text"
    EMAIL = "email"
    PHONE = "phone"
    OPTION = "option"
    CUSTOM = "custom"


class MessageDirection(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


@dataclass
class Session:
    """A user's position in the step graph plus retry/backtracking bookkeeping"""
    user_id: str
    current_step_id: str
    history: List[str] = field(default_factory=list)
    attempts: int = 0
    context_data: Dict[str, Primitive] = field(default_factory=dict)
    created_at: float = 0.0
    last_activity: float = 0.0
    max_context_keys: int = 32

    def set_data(self, key: str, value: Primitive):
        """Store a primitive value in the session's context data"""
        if not isinstance(key, str) or not key:
            raise ContextDataError(f"Context key must be a non-empty string, got {key!r}")
        if not isinstance(value, PRIMITIVE_TYPES):
            raise ContextDataError(
                f"Context value for '{key}' must be a primitive, got {type(value).__name__}"
            )
        if key not in self.context_data and len(self.context_data) >= self.max_context_keys:
            raise ContextDataError(
                f"Context data is limited to {self.max_context_keys} keys"
            )
        self.context_data[key] = value

    def get_data(self, key: str, default: Any = None) -> Any:
        return self.context_data.get(key, default)


@dataclass(frozen=True)
class MessageLogEntry:
    """One line of the bounded per-user message log"""
    direction: MessageDirection
    text: str
    timestamp: float


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one input against a rule"""
    accepted: bool
    reason_text: Optional[str] = None


class ValidationRule(BaseModel):
    """Input constraints attached to a step"""
    model_config = ConfigDict(frozen=True)

    kind: ValidationKind = ValidationKind.TEXT
    required: bool = True
    min_length: Optional[int] = Field(default=None, ge=0)
    max_length: Optional[int] = Field(default=None, ge=0)
    pattern: Optional[str] = None
    custom_predicate: Optional[Callable[[str], bool]] = None
    error_text: Optional[str] = None

    @field_validator("pattern")
    @classmethod
    def _pattern_compiles(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"Invalid pattern {value!r}: {e}")
        return value

    @model_validator(mode="after")
    def _custom_needs_predicate(self) -> "ValidationRule":
        if self.kind == ValidationKind.CUSTOM and self.custom_predicate is None:
            raise ValueError("Custom validation rules require a custom_predicate")
        return self


class StepOption(BaseModel):
    """A selectable entry in a step's option table"""
    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    target_step_id: str


class TransitionKind(str, Enum):
    """How a step picks the next step"""
    OPTIONS = "options"
    STATIC = "static"
    COMPUTED = "computed"


class Transition(BaseModel):
    """
    Tagged transition rule of a step.

    OPTIONS resolves through the step's option table, STATIC always moves to
    ``target`` and COMPUTED calls ``compute(input, session)``.
    """
    model_config = ConfigDict(frozen=True)

    kind: TransitionKind = TransitionKind.OPTIONS
    target: Optional[str] = None
    compute: Optional[Callable[[str, Session], str]] = None

    @model_validator(mode="after")
    def _check_variant(self) -> "Transition":
        if self.kind == TransitionKind.STATIC and not self.target:
            raise ValueError("Static transitions require a target step id")
        if self.kind == TransitionKind.COMPUTED and self.compute is None:
            raise ValueError("Computed transitions require a compute function")
        if self.kind != TransitionKind.STATIC and self.target is not None:
            raise ValueError("Only static transitions carry a fixed target")
        if self.kind != TransitionKind.COMPUTED and self.compute is not None:
            raise ValueError("Only computed transitions carry a compute function")
        return self

    @classmethod
    def static(cls, target: str) -> "Transition":
        return cls(kind=TransitionKind.STATIC, target=target)

    @classmethod
    def option_table(cls) -> "Transition":
        return cls(kind=TransitionKind.OPTIONS)

    @classmethod
    def computed(cls, compute: Callable[[str, Session], str]) -> "Transition":
        return cls(kind=TransitionKind.COMPUTED, compute=compute)


class StepDefinition(BaseModel):
    """A node of the conversation graph"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    display_text: str
    options: List[StepOption] = Field(default_factory=list)
    validation: Optional[ValidationRule] = None
    transition: Transition = Field(default_factory=Transition.option_table)
    side_effect: Optional[Callable[[str, Session], None]] = None
    allow_back: bool = True
    allow_restart: bool = True
    terminal: bool = False

    @model_validator(mode="after")
    def _options_only_for_option_tables(self) -> "StepDefinition":
        if self.options and self.transition.kind != TransitionKind.OPTIONS:
            raise ValueError(
                f"Step '{self.id}' defines options but uses a {self.transition.kind.value} transition"
            )
        return self

    def static_targets(self) -> List[str]:
        """Targets that can be checked without calling user code"""
        if self.transition.kind == TransitionKind.STATIC:
            return [self.transition.target]
        if self.transition.kind == TransitionKind.OPTIONS:
            return [option.target_step_id for option in self.options]
        return []


class ChatbotResponse(BaseModel):
    """Reply returned for one processed turn"""
    text: str
    options: List[str] = Field(default_factory=list)
    terminal: bool = False
    data: Optional[Dict[str, Any]] = None
