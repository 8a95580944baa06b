"""Shared fixtures for the conversation engine tests"""
import pytest

from core.conversation import (
    ConversationFlowController,
    ConversationStore,
    StepRegistry,
    StoreConfig,
    build_default_registry,
)
from models.schemas import StepDefinition, StepOption, Transition

START_TIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced clock returning epoch seconds"""

    def __init__(self, start: float = START_TIME):
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return ConversationStore(StoreConfig(initial_step_id="welcome"), clock=clock)


@pytest.fixture
def registry():
    return build_default_registry()


@pytest.fixture
def controller(registry, store):
    return ConversationFlowController(registry, store)


@pytest.fixture
def talk(controller, clock):
    """Send a message after the debounce window has passed"""
    def send(user_id: str, text: str):
        clock.advance(2.5)
        return controller.process_turn(user_id, text)
    return send


def small_steps():
    """A four-step graph used where the help-desk flow gets in the way"""
    return [
        StepDefinition(
            id="start",
            display_text="Start here",
            options=[
                StepOption(key="a", label="Alpha", target_step_id="alpha"),
                StepOption(key="b", label="Beta", target_step_id="beta"),
            ],
        ),
        StepDefinition(
            id="alpha",
            display_text="Alpha step",
            options=[StepOption(key="g", label="Gamma", target_step_id="gamma")],
        ),
        StepDefinition(
            id="beta",
            display_text="Beta step",
            transition=Transition.static("gamma"),
        ),
        StepDefinition(
            id="gamma",
            display_text="Gamma step",
            options=[StepOption(key="s", label="Back to start", target_step_id="start")],
        ),
    ]


@pytest.fixture
def small_registry():
    return StepRegistry(initial_step_id="start", steps=small_steps())


@pytest.fixture
def small_controller(small_registry, clock):
    store = ConversationStore(StoreConfig(initial_step_id="start"), clock=clock)
    return ConversationFlowController(small_registry, store)
