"""Unit tests for heuristic task parsing and task matching."""

import pytest

from todoist_agent.assistant.models import IntentAction, ParsedTaskDetails, TodoistTask
from todoist_agent.assistant.task_parser import (
    check_for_duplicates,
    details_to_intent,
    find_matching_tasks,
    has_ambiguous_priority,
    parse_priority_label,
    parse_user_input,
)


@pytest.fixture
def existing_tasks() -> list[TodoistTask]:
    """Create a small list of open tasks."""
    return [
        TodoistTask(id="1", content="Buy milk today"),
        TodoistTask(id="2", content="Call mom"),
        TodoistTask(id="3", content="Write quarterly report"),
    ]


@pytest.mark.unit
class TestTaskMatching:
    """Test duplicate detection and task lookup."""

    def test_duplicate_when_new_is_substring(
        self, existing_tasks: list[TodoistTask]
    ) -> None:
        """Test that new content contained in an existing task matches."""
        matches = check_for_duplicates("buy MILK", existing_tasks)

        assert [task.id for task in matches] == ["1"]

    def test_duplicate_when_existing_is_substring(
        self, existing_tasks: list[TodoistTask]
    ) -> None:
        """Test that an existing task contained in the new content matches."""
        matches = check_for_duplicates("Call mom about the weekend", existing_tasks)

        assert [task.id for task in matches] == ["2"]

    def test_no_duplicate(self, existing_tasks: list[TodoistTask]) -> None:
        """Test that unrelated content has no duplicates."""
        assert check_for_duplicates("Water the plants", existing_tasks) == []

    def test_empty_content_never_duplicates(
        self, existing_tasks: list[TodoistTask]
    ) -> None:
        """Test that empty content matches nothing."""
        assert check_for_duplicates("   ", existing_tasks) == []

    def test_find_matching_tasks(self, existing_tasks: list[TodoistTask]) -> None:
        """Test one-directional substring lookup."""
        assert [t.id for t in find_matching_tasks("report", existing_tasks)] == ["3"]
        assert find_matching_tasks("Call mom tonight", existing_tasks) == []


@pytest.mark.unit
class TestPriorityHelpers:
    """Test priority label and ambiguity helpers."""

    @pytest.mark.parametrize(
        "text,expected",
        [("P1", 4), ("p2", 3), ("make it p3", 2), ("P4.", 1), ("set it to p1", 4)],
    )
    def test_parse_priority_label(self, text: str, expected: int) -> None:
        """Test that UI labels map inversely to API priorities."""
        assert parse_priority_label(text) == expected

    @pytest.mark.parametrize("text", ["p5", "high", "buy p1 batteries", ""])
    def test_parse_priority_label_rejects(self, text: str) -> None:
        """Test that other text is not treated as a label."""
        assert parse_priority_label(text) is None

    @pytest.mark.parametrize(
        "text", ["This is urgent", "Important meeting prep", "reply ASAP"]
    )
    def test_ambiguous_priority(self, text: str) -> None:
        """Test words that signal an unspecified priority."""
        assert has_ambiguous_priority(text) is True

    def test_not_ambiguous(self) -> None:
        """Test plain content."""
        assert has_ambiguous_priority("Buy milk") is False


@pytest.mark.unit
class TestParseUserInput:
    """Test the offline intent parser."""

    def test_simple_creation(self) -> None:
        """Test a prefixed task with a due date."""
        details = parse_user_input("Create a task: Buy groceries due tomorrow")

        assert details.is_task_creation is True
        assert details.content == "Buy groceries"
        assert details.due_date == "tomorrow"
        assert details.priority is None
        assert details.labels == []

    def test_creation_with_priority_and_tag(self) -> None:
        """Test extraction of due date, P-label priority and an @tag."""
        details = parse_user_input("Add task Call mom due friday p1 @family")

        assert details.content == "Call mom"
        assert details.due_date == "friday"
        assert details.priority == 4
        assert details.labels == ["family"]

    def test_priority_word(self) -> None:
        """Test "high priority" phrasing."""
        details = parse_user_input("Buy milk with high priority")

        assert details.content == "Buy milk"
        assert details.priority == 3

    def test_labels_phrase(self) -> None:
        """Test "with labels X, Y" phrasing."""
        details = parse_user_input("Add groceries with labels shopping, home")

        assert details.content == "groceries"
        assert details.labels == ["shopping", "home"]

    def test_update_due_date(self) -> None:
        """Test an unquoted update."""
        details = parse_user_input("Change Buy milk to tomorrow")

        assert details.is_task_update is True
        assert details.update_task_name == "Buy milk"
        assert details.update_field == "due_date"
        assert details.update_value == "tomorrow"

    def test_update_priority(self) -> None:
        """Test a quoted update to a priority label."""
        details = parse_user_input('Update "Buy milk" to p2')

        assert details.update_task_name == "Buy milk"
        assert details.update_field == "priority"
        assert details.update_value == "p2"

    @pytest.mark.parametrize(
        "text,content",
        [
            ("Mark Buy milk as done", "Buy milk"),
            ("Complete the task call mom", "call mom"),
            ("I finished the report", "the report"),
        ],
    )
    def test_completion(self, text: str, content: str) -> None:
        """Test completion phrasings."""
        details = parse_user_input(text)

        assert details.is_task_completion is True
        assert details.content == content

    @pytest.mark.parametrize("text", ["Show me my tasks", "What are my tasks?"])
    def test_listing(self, text: str) -> None:
        """Test listing phrasings."""
        assert parse_user_input(text).is_task_listing is True

    def test_batch(self) -> None:
        """Test a counted batch request."""
        details = parse_user_input(
            "Create 3 tasks: buy milk, call mom and walk the dog"
        )

        assert details.declared_count == 3
        assert [spec.content for spec in details.batch] == [
            "buy milk",
            "call mom",
            "walk the dog",
        ]

    def test_conversation_is_not_a_task(self) -> None:
        """Test that small talk yields no operation."""
        details = parse_user_input("How are you?")

        assert details == ParsedTaskDetails()


@pytest.mark.unit
class TestDetailsToIntent:
    """Test conversion of parser output into intents."""

    def test_creation_intent(self) -> None:
        """Test that a creation maps to a create intent with a tier."""
        intent = details_to_intent(parse_user_input("Add task Call mom p1"))

        assert intent.action == IntentAction.CREATE
        assert intent.entities.task_content == "Call mom"
        assert intent.entities.priority == "urgent"
        assert intent.is_actionable(0.7) is True

    def test_batch_intent(self) -> None:
        """Test that a batch keeps its declared count."""
        intent = details_to_intent(parse_user_input("Add 2 tasks: one, two"))

        assert intent.action == IntentAction.CREATE_MULTIPLE
        assert intent.task_count == 2
        assert len(intent.tasks) == 2

    def test_update_intent(self) -> None:
        """Test that an update carries its field and value."""
        intent = details_to_intent(parse_user_input("Change Buy milk to tomorrow"))

        assert intent.action == IntentAction.UPDATE
        assert intent.entities.task_content == "Buy milk"
        assert intent.entities.update_field == "due_date"
        assert intent.entities.update_value == "tomorrow"

    def test_none_intent(self) -> None:
        """Test that no match is not actionable."""
        intent = details_to_intent(ParsedTaskDetails())

        assert intent.action == IntentAction.NONE
        assert intent.is_actionable(0.0) is False
