"""Tests for input sanitizing, control keywords and validation rules"""
import pytest

from core.conversation.pipeline.validators import ControlCommand, InputValidator
from models.schemas import ValidationKind, ValidationRule


def rule(**kwargs):
    return ValidationRule(**kwargs)


@pytest.mark.parametrize("validation_rule, text, accepted", [
    (rule(), "", False),
    (rule(), "   ", False),
    (rule(required=False), "", True),
    (rule(required=False, kind=ValidationKind.EMAIL), "  ", True),
    (rule(min_length=3), "ab", False),
    (rule(min_length=3), " abc ", True),
    (rule(max_length=3), "abcd", False),
    (rule(kind=ValidationKind.NUMBER), "42", True),
    (rule(kind=ValidationKind.NUMBER), "-3.5", True),
    (rule(kind=ValidationKind.NUMBER), "1e3", True),
    (rule(kind=ValidationKind.NUMBER), "12a", False),
    (rule(kind=ValidationKind.NUMBER), "nan", False),
    (rule(kind=ValidationKind.EMAIL), "user@example.com", True),
    (rule(kind=ValidationKind.EMAIL), "a@b", True),
    (rule(kind=ValidationKind.EMAIL), "user@@example.com", False),
    (rule(kind=ValidationKind.EMAIL), "@example.com", False),
    (rule(kind=ValidationKind.EMAIL), "user@", False),
    (rule(kind=ValidationKind.EMAIL), "us er@example.com", False),
    (rule(kind=ValidationKind.PHONE), "1234-5678", True),
    (rule(kind=ValidationKind.PHONE), "(11) 98765-4321", True),
    (rule(kind=ValidationKind.PHONE), "1234567", False),
    (rule(kind=ValidationKind.PHONE), "123456789012", False),
    (rule(kind=ValidationKind.OPTION), "whatever", True),
    (rule(pattern=r"^[A-Z]{3}$"), "ABC", True),
    (rule(pattern=r"^[A-Z]{3}$"), "abc", False),
    (rule(kind=ValidationKind.NUMBER, pattern=r"^\d+$"), "12.5", False),
])
def test_validate_rules(validation_rule, text, accepted):
    assert InputValidator.validate(text, validation_rule).accepted is accepted


def test_custom_predicate_decides():
    custom = rule(kind=ValidationKind.CUSTOM, custom_predicate=lambda value: value.startswith("ok"))

    assert InputValidator.validate("  ok go", custom).accepted
    result = InputValidator.validate("nope", custom)
    assert not result.accepted
    assert result.reason_text == "Invalid input."


def test_custom_predicate_errors_reject_input():
    def explode(value):
        raise RuntimeError("boom")

    result = InputValidator.validate("anything", rule(kind=ValidationKind.CUSTOM, custom_predicate=explode))
    assert not result.accepted


def test_custom_rule_requires_predicate():
    with pytest.raises(ValueError):
        ValidationRule(kind=ValidationKind.CUSTOM)


def test_invalid_pattern_is_rejected_at_definition():
    with pytest.raises(ValueError):
        ValidationRule(pattern="([unclosed")


def test_default_and_configured_error_texts():
    assert InputValidator.validate("", rule()).reason_text == "Please type a valid answer."
    assert InputValidator.validate("ab", rule(min_length=3)).reason_text == (
        "The answer must have at least 3 characters."
    )
    assert InputValidator.validate("x", rule(kind=ValidationKind.EMAIL)).reason_text == (
        "Please type a valid email address."
    )
    configured = rule(kind=ValidationKind.NUMBER, error_text="Digits, please.")
    assert InputValidator.validate("abc", configured).reason_text == "Digits, please."


def test_accepted_result_has_no_reason():
    result = InputValidator.validate("hello", rule())
    assert result.accepted
    assert result.reason_text is None


@pytest.mark.parametrize("raw, expected", [
    ("  hello  ", "hello"),
    ("<b>hi</b>", "bhi/b"),
    ("<script>alert(1)</script>hello", "hello"),
    ("<SCRIPT type='x'>alert(1)</SCRIPT> 1", "1"),
    ("javascript:alert(1)", "alert(1)"),
    ("a\x00b", "ab"),
])
def test_sanitize(raw, expected):
    assert InputValidator.sanitize(raw) == expected


def test_sanitize_caps_length():
    assert len(InputValidator.sanitize("x" * 1500)) == 1000
    assert len(InputValidator.sanitize("x" * 50, max_length=10)) == 10


@pytest.mark.parametrize("text, command", [
    ("0", ControlCommand.BACK),
    ("Voltar", ControlCommand.BACK),
    (" BACK ", ControlCommand.BACK),
    ("anterior", ControlCommand.BACK),
    ("#", ControlCommand.RESTART),
    ("inicio", ControlCommand.RESTART),
    ("recomecar", ControlCommand.RESTART),
    ("Restart", ControlCommand.RESTART),
    ("start", ControlCommand.RESTART),
    ("go back", None),
    ("restart now", None),
    ("00", None),
    ("1", None),
])
def test_classify_control_is_exact(text, command):
    assert InputValidator.classify_control(text) == command


@pytest.mark.parametrize("text, expected", [
    ("1", True),
    (" 12 ", True),
    ("0", False),
    ("01", False),
    ("-1", False),
    ("1.0", False),
    ("one", False),
])
def test_is_positive_integer(text, expected):
    assert InputValidator.is_positive_integer(text) is expected
