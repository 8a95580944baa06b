"""
Input validators for the conversation pipeline.

This module normalizes raw user messages, recognizes control keywords and
checks input against the validation rule attached to a step. Everything
here is stateless.
"""

import logging
import re
from enum import Enum
from typing import Optional

from models.schemas import ValidationKind, ValidationResult, ValidationRule

logger = logging.getLogger(__name__)


class ControlCommand(str, Enum):
    """Navigation keywords recognized in any step"""
    BACK = "back"
    RESTART = "restart"


# Exact, case-insensitive keywords
BACK_KEYWORDS = frozenset({"0", "voltar", "back", "anterior"})
RESTART_KEYWORDS = frozenset({"#", "inicio", "recomecar", "restart", "start"})

DEFAULT_ERROR_TEXTS = {
    "required": "Please type a valid answer.",
    "min_length": "The answer must have at least {min_length} characters.",
    "max_length": "The answer must have at most {max_length} characters.",
    ValidationKind.NUMBER: "Please type numbers only.",
    ValidationKind.EMAIL: "Please type a valid email address.",
    ValidationKind.PHONE: "Please type a valid phone number (8 to 11 digits).",
    ValidationKind.OPTION: "Invalid option. Please choose one of the available options.",
    ValidationKind.TEXT: "Invalid text format.",
    ValidationKind.CUSTOM: "Invalid input.",
}


class InputValidator:
    """Validates and normalizes user input for the flow engine"""

    # Maximum allowed message length after sanitizing
    MAX_MESSAGE_LENGTH = 1000

    NUMBER_PATTERN = re.compile(r'^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$')
    EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+$')
    POSITIVE_INTEGER_PATTERN = re.compile(r'^[1-9]\d*$')
    SCRIPT_BLOCK_PATTERN = re.compile(r'<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>', re.IGNORECASE)
    SCRIPT_LIKE_PATTERNS = [
        re.compile(r'javascript:', re.IGNORECASE),
        re.compile(r'data:text/html', re.IGNORECASE),
        re.compile(r'\x00'),
    ]
    PHONE_MIN_DIGITS = 8
    PHONE_MAX_DIGITS = 11

    @classmethod
    def sanitize(cls, message: str, max_length: Optional[int] = None) -> str:
        """
        Normalize a raw message before it reaches the engine.

        Strips surrounding whitespace, script blocks, script-like URL schemes
        and angle brackets, then caps the length. This is a best-effort
        cleanup, not an escaping layer.
        """
        if message is None:
            return ""
        limit = max_length or cls.MAX_MESSAGE_LENGTH

        cleaned = cls.SCRIPT_BLOCK_PATTERN.sub('', str(message).strip())
        for pattern in cls.SCRIPT_LIKE_PATTERNS:
            cleaned = pattern.sub('', cleaned)
        cleaned = re.sub(r'[<>]', '', cleaned)

        return cleaned[:limit].strip()

    @staticmethod
    def normalize(text: str) -> str:
        return text.strip().lower()

    @classmethod
    def classify_control(cls, text: str) -> Optional[ControlCommand]:
        """Return the control command a message stands for, if any"""
        normalized = cls.normalize(text)
        if normalized in BACK_KEYWORDS:
            return ControlCommand.BACK
        if normalized in RESTART_KEYWORDS:
            return ControlCommand.RESTART
        return None

    @classmethod
    def is_positive_integer(cls, text: str) -> bool:
        return bool(cls.POSITIVE_INTEGER_PATTERN.match(text.strip()))

    @classmethod
    def validate(cls, raw_input: Optional[str], rule: ValidationRule) -> ValidationResult:
        """
        Validate user input against a step rule.

        Checks run in order and stop at the first failure: required,
        length, kind-specific format, pattern and finally the custom
        predicate.

        Args:
            raw_input: Message as received (already sanitized)
            rule: Rule of the current step

        Returns:
            ValidationResult with the rejection text when not accepted
        """
        trimmed = (raw_input or "").strip()

        if not trimmed:
            if rule.required:
                return cls._reject(rule, DEFAULT_ERROR_TEXTS["required"])
            return ValidationResult(accepted=True)

        if rule.min_length is not None and len(trimmed) < rule.min_length:
            return cls._reject(
                rule, DEFAULT_ERROR_TEXTS["min_length"].format(min_length=rule.min_length)
            )

        if rule.max_length is not None and len(trimmed) > rule.max_length:
            return cls._reject(
                rule, DEFAULT_ERROR_TEXTS["max_length"].format(max_length=rule.max_length)
            )

        if not cls._matches_kind(trimmed, rule.kind):
            return cls._reject(rule, DEFAULT_ERROR_TEXTS[rule.kind])

        if rule.pattern is not None and not re.search(rule.pattern, trimmed):
            return cls._reject(rule, DEFAULT_ERROR_TEXTS[rule.kind])

        if rule.kind == ValidationKind.CUSTOM:
            try:
                accepted = bool(rule.custom_predicate(trimmed))
            except Exception as e:
                logger.warning(f"Custom validator raised {type(e).__name__}; rejecting input")
                accepted = False
            if not accepted:
                return cls._reject(rule, DEFAULT_ERROR_TEXTS[ValidationKind.CUSTOM])

        return ValidationResult(accepted=True)

    @classmethod
    def _matches_kind(cls, text: str, kind: ValidationKind) -> bool:
        if kind == ValidationKind.NUMBER:
            return bool(cls.NUMBER_PATTERN.match(text))
        if kind == ValidationKind.EMAIL:
            return bool(cls.EMAIL_PATTERN.match(text))
        if kind == ValidationKind.PHONE:
            digits = re.sub(r'\D', '', text)
            return cls.PHONE_MIN_DIGITS <= len(digits) <= cls.PHONE_MAX_DIGITS
        # Option ranges are checked by the step registry
        return True

    @staticmethod
    def _reject(rule: ValidationRule, default_text: str) -> ValidationResult:
        return ValidationResult(accepted=False, reason_text=rule.error_text or default_text)
