"""Tests for step registration and transition resolution"""
import pytest

from core.conversation import StepRegistrationError, StepRegistry
from core.conversation.orchestration import ERROR_STEP_ID, VALIDATION_ERROR_STEP_ID
from models.schemas import Session, StepDefinition, StepOption, Transition, TransitionKind


def session_at(step_id, history=None):
    return Session(user_id="u1", current_step_id=step_id, history=list(history or []))


def test_register_get_and_list(small_registry):
    assert small_registry.list_ids() == ["start", "alpha", "beta", "gamma"]
    assert small_registry.get("alpha").display_text == "Alpha step"
    assert small_registry.get("missing") is None
    assert "beta" in small_registry
    assert len(small_registry) == 4
    assert small_registry.initial_step.id == "start"


def test_register_replaces_existing_step(small_registry):
    small_registry.register(StepDefinition(id="alpha", display_text="New alpha"))

    assert small_registry.get("alpha").display_text == "New alpha"
    assert len(small_registry) == 4


def test_reserved_validation_error_id_cannot_be_registered(small_registry):
    with pytest.raises(StepRegistrationError):
        small_registry.register(StepDefinition(id=VALIDATION_ERROR_STEP_ID, display_text="nope"))


def test_remove(small_registry):
    removed = small_registry.remove("gamma")

    assert removed.id == "gamma"
    assert "gamma" not in small_registry
    with pytest.raises(StepRegistrationError):
        small_registry.remove("gamma")
    with pytest.raises(StepRegistrationError):
        small_registry.remove("start")


@pytest.mark.parametrize("text, target", [
    ("1", "alpha"),
    (" 2 ", "beta"),
    ("3", VALIDATION_ERROR_STEP_ID),
    ("0", VALIDATION_ERROR_STEP_ID),
    ("B", "beta"),
    ("alp", "alpha"),
    ("ETA", "beta"),
    ("", VALIDATION_ERROR_STEP_ID),
    ("zzz", VALIDATION_ERROR_STEP_ID),
])
def test_option_resolution(small_registry, text, target):
    step = small_registry.get("start")
    assert small_registry.resolve_transition(step, text, session_at("start")) == target


def test_first_matching_option_wins():
    step = StepDefinition(
        id="fruit",
        display_text="Pick",
        options=[
            StepOption(key="r", label="Red apple", target_step_id="red"),
            StepOption(key="g", label="Green apple", target_step_id="green"),
        ],
    )
    registry = StepRegistry(initial_step_id="fruit", steps=[step])

    assert registry.resolve_transition(step, "apple", session_at("fruit")) == "red"


def test_static_target_is_used_verbatim(small_registry):
    step = small_registry.get("beta")
    assert small_registry.resolve_transition(step, "anything at all", session_at("beta")) == "gamma"


def test_computed_target_sees_input_and_session():
    def previous_or_start(user_input, session):
        return session.history[-1] if session.history else "start"

    step = StepDefinition(id="jump", display_text="Jump", transition=Transition.computed(previous_or_start))
    registry = StepRegistry(initial_step_id="jump", steps=[step])

    assert registry.resolve_transition(step, "x", session_at("jump", ["alpha", "beta"])) == "beta"
    assert registry.resolve_transition(step, "x", session_at("jump")) == "start"


def test_step_without_options_or_target_resolves_to_error():
    step = StepDefinition(id="dead_end", display_text="Nothing here")
    registry = StepRegistry(initial_step_id="dead_end", steps=[step])

    assert step.transition.kind == TransitionKind.OPTIONS
    assert registry.resolve_transition(step, "1", session_at("dead_end")) == ERROR_STEP_ID


def test_options_and_static_transition_are_exclusive():
    with pytest.raises(ValueError):
        StepDefinition(
            id="both",
            display_text="Both",
            options=[StepOption(key="a", label="A", target_step_id="a")],
            transition=Transition.static("b"),
        )


def test_transition_variants_are_checked():
    with pytest.raises(ValueError):
        Transition(kind=TransitionKind.STATIC)
    with pytest.raises(ValueError):
        Transition(kind=TransitionKind.COMPUTED)
    with pytest.raises(ValueError):
        Transition(kind=TransitionKind.OPTIONS, target="x")


def test_dangling_targets(small_registry):
    assert small_registry.dangling_targets() == []

    small_registry.register(StepDefinition(
        id="alpha",
        display_text="Alpha step",
        options=[StepOption(key="x", label="Nowhere", target_step_id="nowhere")],
    ))

    assert small_registry.dangling_targets() == [("alpha", "nowhere")]


def test_default_flow_is_fully_wired(registry):
    assert registry.dangling_targets() == []

    reachable = registry.reachable_from()
    assert "welcome" in reachable
    for step_id in reachable:
        assert registry.get(step_id) is not None
    # Computed targets are not followed; the error step is only shown after a reset
    assert set(registry.list_ids()) - reachable == {
        ERROR_STEP_ID, "agent_callback", "agent_callback_ticket",
    }
