"""Unit tests for the conversation state machine."""

import pytest

from todoist_agent.assistant.models import ConversationState
from todoist_agent.assistant.state_machine import (
    ConversationStateMachine,
    is_cancellation,
    is_confirmation,
)


@pytest.fixture
def machine() -> ConversationStateMachine:
    """Create a fresh state machine."""
    return ConversationStateMachine()


@pytest.mark.unit
class TestKeywordMatching:
    """Test confirmation and cancellation keywords."""

    @pytest.mark.parametrize(
        "text", ["yes", "Y", "ok", "Okay", "sure", "proceed", "create anyway", " do it "]
    )
    def test_confirmation_words(self, text: str) -> None:
        """Test that whole-message confirmation words match."""
        assert is_confirmation(text) is True

    @pytest.mark.parametrize(
        "text", ["no", "N", "cancel", "stop", "abort", "nevermind", "never mind"]
    )
    def test_cancellation_words(self, text: str) -> None:
        """Test that whole-message cancellation words match."""
        assert is_cancellation(text) is True

    @pytest.mark.parametrize("text", ["yes please buy milk", "okay then", "nope"])
    def test_partial_matches_rejected(self, text: str) -> None:
        """Test that keywords must make up the whole message."""
        assert is_confirmation(text) is False
        assert is_cancellation(text) is False


@pytest.mark.unit
class TestTransitions:
    """Test state transitions and history."""

    def test_initial_state(self, machine: ConversationStateMachine) -> None:
        """Test that a new machine is idle with empty history."""
        assert machine.state == ConversationState.IDLE
        assert machine.get_history() == []
        assert machine.is_awaiting_user_response() is False

    def test_transition_records_previous_state(
        self, machine: ConversationStateMachine
    ) -> None:
        """Test that a transition records where it came from."""
        machine.transition(
            ConversationState.AWAITING_CONFIRMATION, pending_action="duplicate"
        )

        context = machine.get_context()
        assert machine.state == ConversationState.AWAITING_CONFIRMATION
        assert context.previous_state == ConversationState.IDLE
        assert context.pending_action == "duplicate"
        assert [entry.state for entry in machine.get_history()] == [
            ConversationState.IDLE
        ]

    def test_context_is_a_copy(self, machine: ConversationStateMachine) -> None:
        """Test that callers cannot mutate the machine's context."""
        machine.transition(ConversationState.PROCESSING_TASK, metadata={"count": 1})

        context = machine.get_context()
        context.metadata["count"] = 99

        assert machine.get_context().metadata == {"count": 1}

    def test_history_is_bounded(self) -> None:
        """Test that only the most recent transitions are kept."""
        machine = ConversationStateMachine(history_size=3)
        for _ in range(5):
            machine.transition(ConversationState.PROCESSING_TASK)
            machine.transition(ConversationState.IDLE)

        assert len(machine.get_history()) == 3

    def test_reset_clears_pending_action(
        self, machine: ConversationStateMachine
    ) -> None:
        """Test that reset returns to idle and drops the pending action."""
        machine.transition(
            ConversationState.AWAITING_CONFIRMATION, pending_action="priority"
        )
        machine.reset()

        context = machine.get_context()
        assert machine.state == ConversationState.IDLE
        assert context.pending_action is None
        assert context.previous_state == ConversationState.AWAITING_CONFIRMATION

    @pytest.mark.parametrize(
        "state",
        [
            ConversationState.AWAITING_CONFIRMATION,
            ConversationState.AWAITING_CLARIFICATION,
        ],
    )
    def test_awaiting_states(
        self, machine: ConversationStateMachine, state: ConversationState
    ) -> None:
        """Test which states wait on the user."""
        machine.transition(state)

        assert machine.is_awaiting_user_response() is True


@pytest.mark.unit
class TestHandleUserInput:
    """Test input classification relative to the current state."""

    def test_confirmation_ignored_when_idle(
        self, machine: ConversationStateMachine
    ) -> None:
        """Test that "yes" is plain text outside awaiting_confirmation."""
        analysis = machine.handle_user_input("yes")

        assert analysis.is_confirmation is False
        assert analysis.is_cancel is False
        assert analysis.filtered_input == "yes"

    def test_confirmation_while_awaiting(
        self, machine: ConversationStateMachine
    ) -> None:
        """Test that "yes" confirms while awaiting confirmation."""
        machine.transition(ConversationState.AWAITING_CONFIRMATION)

        analysis = machine.handle_user_input("yes")

        assert analysis.is_confirmation is True
        assert analysis.is_cancel is False

    def test_cancel_while_awaiting(self, machine: ConversationStateMachine) -> None:
        """Test that "cancel" cancels while awaiting confirmation."""
        machine.transition(ConversationState.AWAITING_CONFIRMATION)

        analysis = machine.handle_user_input("cancel")

        assert analysis.is_cancel is True
        assert analysis.is_confirmation is False

    def test_new_content_while_awaiting(
        self, machine: ConversationStateMachine
    ) -> None:
        """Test that other text passes through unchanged."""
        machine.transition(ConversationState.AWAITING_CONFIRMATION)

        analysis = machine.handle_user_input("Buy bread")

        assert analysis.is_confirmation is False
        assert analysis.is_cancel is False
        assert analysis.filtered_input == "Buy bread"

    def test_clarification_passes_through(
        self, machine: ConversationStateMachine
    ) -> None:
        """Test that input while awaiting clarification is not filtered."""
        machine.transition(ConversationState.AWAITING_CONFIRMATION)
        machine.transition(ConversationState.AWAITING_CLARIFICATION)

        analysis = machine.handle_user_input("yes")

        assert analysis.is_confirmation is False
        assert analysis.filtered_input == "yes"

    def test_artifact_filtered_after_confirmation(
        self, machine: ConversationStateMachine
    ) -> None:
        """Test that a confirmation word glued to new content is stripped."""
        machine.transition(ConversationState.AWAITING_CONFIRMATION)
        machine.reset()

        analysis = machine.handle_user_input("create anyway Buy milk")

        assert analysis.filtered_input == "Buy milk"
        assert analysis.is_confirmation is False

    def test_yes_artifact_filtered_after_confirmation(
        self, machine: ConversationStateMachine
    ) -> None:
        """Test that "yes, ..." is stripped right after a confirmation."""
        machine.transition(ConversationState.AWAITING_CONFIRMATION)
        machine.reset()

        analysis = machine.handle_user_input("yes, call the plumber")

        assert analysis.filtered_input == "call the plumber"

    def test_no_artifact_filtering_from_idle(
        self, machine: ConversationStateMachine
    ) -> None:
        """Test that artifacts are kept when no confirmation preceded."""
        analysis = machine.handle_user_input("proceed with the plan")

        assert analysis.filtered_input == "proceed with the plan"
