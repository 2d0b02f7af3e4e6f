"""Dialogue state machine for confirmation and cancellation handling."""

import copy
import logging
import re
from collections import deque
from dataclasses import replace
from datetime import datetime
from typing import Any

from .config import STATE_HISTORY_SIZE
from .models import ConversationState, InputAnalysis, StateContext, StateTransition

logger = logging.getLogger(__name__)

CONFIRMATION_PATTERN = re.compile(
    r"^(?:yes|y|ok|okay|sure|proceed|create anyway|do it)$", re.IGNORECASE
)
CANCEL_PATTERN = re.compile(
    r"^(?:no|n|cancel|stop|abort|nevermind|never mind)$", re.IGNORECASE
)
ARTIFACT_PATTERNS = (
    re.compile(r"^(?:create anyway|proceed|confirm)\s+(.+)", re.IGNORECASE | re.DOTALL),
    re.compile(r"^yes,?\s+(.+)", re.IGNORECASE | re.DOTALL),
)


def is_confirmation(text: str) -> bool:
    return bool(CONFIRMATION_PATTERN.match(text.strip()))


def is_cancellation(text: str) -> bool:
    return bool(CANCEL_PATTERN.match(text.strip()))


class ConversationStateMachine:
    """
    Tracks the dialogue state of one chat session.

    The machine records transitions; the session decides when to make
    them. History keeps the state left behind by each transition and is
    for diagnostics only.
    """

    def __init__(self, history_size: int = STATE_HISTORY_SIZE) -> None:
        self._state = ConversationState.IDLE
        self._context = StateContext()
        self._history: deque[StateTransition] = deque(maxlen=history_size)

    @property
    def state(self) -> ConversationState:
        return self._state

    def get_context(self) -> StateContext:
        """Return a copy of the current state context."""
        return copy.deepcopy(self._context)

    def get_history(self) -> list[StateTransition]:
        return list(self._history)

    def transition(self, new_state: ConversationState, **changes: Any) -> None:
        """
        Move to a new state.

        Args:
            new_state: State to enter
            **changes: StateContext fields to overwrite (pending_action, metadata)
        """
        previous_state = self._state
        self._history.append(StateTransition(state=previous_state, timestamp=datetime.now()))

        self._state = new_state
        self._context = replace(
            self._context,
            **changes,
            previous_state=previous_state,
            timestamp=datetime.now(),
        )
        logger.debug(f"State transition: {previous_state.value} -> {new_state.value}")

    def is_awaiting_user_response(self) -> bool:
        return self._state in (
            ConversationState.AWAITING_CONFIRMATION,
            ConversationState.AWAITING_CLARIFICATION,
        )

    def should_filter_confirmation_artifacts(self) -> bool:
        return self._context.previous_state == ConversationState.AWAITING_CONFIRMATION

    def reset(self) -> None:
        logger.info("Resetting conversation state")
        self.transition(ConversationState.IDLE, pending_action=None, metadata=None)

    def handle_user_input(self, text: str) -> InputAnalysis:
        """
        Classify input relative to the current state.

        Confirmation and cancellation are only recognised while awaiting
        confirmation. Right after leaving that state, a confirmation word
        glued to new content ("create anyway Buy milk") is stripped.
        """
        if self._state == ConversationState.AWAITING_CONFIRMATION:
            confirmed = is_confirmation(text)
            cancelled = is_cancellation(text)
            if confirmed or cancelled:
                return InputAnalysis(
                    is_confirmation=confirmed, is_cancel=cancelled, filtered_input=text
                )

        if self._state == ConversationState.AWAITING_CLARIFICATION:
            return InputAnalysis(is_confirmation=False, is_cancel=False, filtered_input=text)

        if self.should_filter_confirmation_artifacts():
            for pattern in ARTIFACT_PATTERNS:
                match = pattern.match(text)
                if match and match.group(1).strip():
                    filtered = match.group(1).strip()
                    logger.debug(f"Filtered confirmation artifact: {text!r} -> {filtered!r}")
                    return InputAnalysis(
                        is_confirmation=False, is_cancel=False, filtered_input=filtered
                    )

        return InputAnalysis(is_confirmation=False, is_cancel=False, filtered_input=text)
