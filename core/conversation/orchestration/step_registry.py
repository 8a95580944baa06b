"""
Registry of conversation steps.

This module holds the step graph the flow controller walks and resolves a
step's outgoing transition for a given input. Steps are immutable once
registered; administrators may replace or remove them at runtime.
"""

import logging
import re
import threading
from collections import deque
from typing import Dict, Iterable, List, Optional, Set, Tuple

from models.schemas import Session, StepDefinition, TransitionKind
from ..errors import StepRegistrationError
from .transitions import ERROR_STEP_ID, VALIDATION_ERROR_STEP_ID

logger = logging.getLogger(__name__)


class StepRegistry:
    """Registry for managing conversation steps"""

    POSITIVE_INTEGER = re.compile(r'^\d+$')

    def __init__(self, initial_step_id: str = "welcome",
                 steps: Optional[Iterable[StepDefinition]] = None):
        self.initial_step_id = initial_step_id
        self._steps: Dict[str, StepDefinition] = {}
        self._lock = threading.RLock()

        for step in steps or []:
            self.register(step)

    def register(self, step: StepDefinition) -> None:
        """
        Register a step, replacing any step with the same id.

        Args:
            step: Step definition

        Raises:
            StepRegistrationError: If the id is reserved
        """
        if not isinstance(step, StepDefinition):
            raise StepRegistrationError(f"Expected a StepDefinition, got {type(step).__name__}")
        if step.id == VALIDATION_ERROR_STEP_ID:
            raise StepRegistrationError(f"Step id '{step.id}' is reserved")

        with self._lock:
            replaced = step.id in self._steps
            self._steps[step.id] = step

        logger.info(
            f"{'Replaced' if replaced else 'Registered'} step {step.id}",
            extra={"step_id": step.id, "transition": step.transition.kind.value},
        )

    def remove(self, step_id: str) -> StepDefinition:
        """Remove a step, returning its definition"""
        if step_id == self.initial_step_id:
            raise StepRegistrationError("The initial step cannot be removed")

        with self._lock:
            step = self._steps.pop(step_id, None)

        if step is None:
            raise StepRegistrationError(f"Step '{step_id}' is not registered")

        logger.info(f"Removed step {step_id}", extra={"step_id": step_id})
        return step

    def get(self, step_id: str) -> Optional[StepDefinition]:
        with self._lock:
            return self._steps.get(step_id)

    def __contains__(self, step_id: str) -> bool:
        with self._lock:
            return step_id in self._steps

    def __len__(self) -> int:
        with self._lock:
            return len(self._steps)

    def list_ids(self) -> List[str]:
        """Get all registered step ids in registration order"""
        with self._lock:
            return list(self._steps.keys())

    @property
    def initial_step(self) -> Optional[StepDefinition]:
        return self.get(self.initial_step_id)

    def resolve_transition(self, step: StepDefinition, user_input: str,
                           session: Session) -> str:
        """
        Work out the next step id for an input.

        Computed targets win over static targets, which win over the option
        table. Options match by 1-based number first, then by key (exact)
        or label (substring), case-insensitively and in list order.

        Returns:
            The target step id, VALIDATION_ERROR_STEP_ID when no option
            matches, or ERROR_STEP_ID when the step has nowhere to go
        """
        transition = step.transition

        if transition.kind == TransitionKind.COMPUTED:
            return transition.compute(user_input, session)

        if transition.kind == TransitionKind.STATIC:
            return transition.target

        if not step.options:
            return ERROR_STEP_ID

        return self._match_option(step, user_input.strip())

    def _match_option(self, step: StepDefinition, text: str) -> str:
        if self.POSITIVE_INTEGER.match(text):
            index = int(text)
            if 1 <= index <= len(step.options):
                return step.options[index - 1].target_step_id

        if not text:
            return VALIDATION_ERROR_STEP_ID

        lowered = text.lower()
        for option in step.options:
            if option.key.lower() == lowered or lowered in option.label.lower():
                return option.target_step_id

        return VALIDATION_ERROR_STEP_ID

    def dangling_targets(self) -> List[Tuple[str, str]]:
        """List (step_id, target) pairs whose static or option target is unknown"""
        with self._lock:
            steps = list(self._steps.values())
            known = set(self._steps)

        dangling = []
        for step in steps:
            for target in step.static_targets():
                if target not in known:
                    dangling.append((step.id, target))
        return dangling

    def reachable_from(self, step_id: Optional[str] = None) -> Set[str]:
        """Step ids reachable through static and option edges"""
        start = step_id or self.initial_step_id
        seen: Set[str] = set()
        queue = deque([start])

        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            step = self.get(current)
            if step is None:
                continue
            queue.extend(t for t in step.static_targets() if t not in seen)

        return seen
