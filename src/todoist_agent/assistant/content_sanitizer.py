"""Rule-based cleaner for text that is about to become task content."""

import logging
import re
from collections.abc import Iterable
from typing import Any

from .models import SanitizationResult, SanitizationRule

logger = logging.getLogger(__name__)

_QUOTE_PAIRS = {'"': '"', "'": "'", "“": "”", "‘": "’"}


def _unwrap_quoted(text: str) -> str:
    """Drop one pair of wrapping quotes, tolerating a trailing period."""
    stripped = text.strip()
    if len(stripped) < 2 or stripped[0] not in _QUOTE_PAIRS:
        return stripped
    closing = _QUOTE_PAIRS[stripped[0]]
    body = stripped[:-1] if stripped.endswith(".") else stripped
    if len(body) >= 2 and body.endswith(closing):
        return body[1:-1].strip()
    return stripped[1:] if closing not in stripped[1:] else stripped


def _strip_quote_wrapping(match: re.Match[str]) -> str:
    return match.group(2)


def _strip_ai_artifact(match: re.Match[str]) -> str:
    return _unwrap_quoted(match.group(1))


def default_rules() -> list[SanitizationRule]:
    """Canonical rules in their required application order."""
    return [
        SanitizationRule(
            name="remove_task_prefix",
            pattern=re.compile(r"^(?:(?:task|create|title|todo):\s*)+", re.IGNORECASE),
            replacement="",
            description="Remove task creation prefixes",
        ),
        SanitizationRule(
            name="remove_confirmation_artifacts",
            pattern=re.compile(
                r"^(?:(?:create anyway|proceed|confirm)\b,?|yes\b,?)\s*",
                re.IGNORECASE,
            ),
            replacement="",
            description="Remove confirmation response artifacts",
        ),
        SanitizationRule(
            name="remove_list_markers",
            pattern=re.compile(r"^([\"'“‘]?)(?:\d+\.\s*|[-*•]\s*)"),
            replacement=r"\1",
            description="Remove list markers and numbering",
        ),
        SanitizationRule(
            name="remove_quote_wrapping",
            pattern=re.compile(r"^([\"'])(.+)\1$", re.DOTALL),
            replacement=_strip_quote_wrapping,
            description="Remove wrapping quotes",
        ),
        SanitizationRule(
            name="normalize_whitespace",
            pattern=re.compile(r"\s+"),
            replacement=" ",
            description="Normalize multiple whitespaces to single space",
            count=0,
        ),
        SanitizationRule(
            name="remove_ai_artifacts",
            pattern=re.compile(
                r"^I['’]ll create (?:(?:a )?task|the following(?: \d+)? tasks?):?\s*(.*)$",
                re.IGNORECASE | re.DOTALL,
            ),
            replacement=_strip_ai_artifact,
            description="Remove AI response formatting artifacts",
        ),
        SanitizationRule(
            name="remove_action_prefixes",
            pattern=re.compile(
                r"^(?:add|create|make|schedule)\s+(?:a\s+)?(?:task:?\s+)?(?:to\s+)?",
                re.IGNORECASE,
            ),
            replacement="",
            description="Remove action verb prefixes",
        ),
    ]


class ContentSanitizer:
    """
    Applies an ordered list of named rules to raw text.

    Every enabled rule runs exactly once, in order, and the text is
    re-trimmed after each one. There is no fixed-point iteration.
    """

    def __init__(self, rules: Iterable[SanitizationRule] | None = None) -> None:
        self._rules: list[SanitizationRule] = (
            list(rules) if rules is not None else default_rules()
        )

    def sanitize(
        self, content: Any, rule_names: Iterable[str] | None = None
    ) -> SanitizationResult:
        """
        Sanitize a string.

        Args:
            content: Text to clean. Non-string, empty or whitespace-only
                values are returned unchanged.
            rule_names: Optional subset of rule names to apply; order is
                still the canonical rule order.

        Returns:
            SanitizationResult with the cleaned text and applied rule names
        """
        if not isinstance(content, str) or not content.strip():
            logger.debug(f"Skipping sanitization of invalid content: {content!r}")
            return SanitizationResult(original=content, sanitized=content)

        selected = set(rule_names) if rule_names is not None else None
        applicable = [
            rule
            for rule in self._rules
            if rule.enabled and (selected is None or rule.name in selected)
        ]

        sanitized = content.strip()
        rules_applied: list[str] = []

        for rule in applicable:
            before = sanitized
            sanitized = rule.pattern.sub(rule.replacement, sanitized, count=rule.count)
            sanitized = sanitized.strip()
            if sanitized != before:
                rules_applied.append(rule.name)
                logger.debug(f"Rule applied: {rule.name} ({before!r} -> {sanitized!r})")

        result = SanitizationResult(
            original=content,
            sanitized=sanitized,
            rules_applied=rules_applied,
            has_changes=sanitized != content,
        )
        if result.has_changes:
            logger.info(
                f"Content sanitized: {content!r} -> {sanitized!r} "
                f"({len(rules_applied)} rules)"
            )
        return result

    def sanitize_for_todoist(self, data: dict[str, Any]) -> dict[str, Any]:
        """
        Sanitize a task-store payload.

        Content gets every rule, the due string only whitespace
        normalization, and each label whitespace and quote stripping.
        Empty and non-string labels are dropped; absent keys stay absent.
        """
        result = dict(data)

        if result.get("content"):
            result["content"] = self.sanitize(result["content"]).sanitized

        if result.get("due_string"):
            result["due_string"] = self.sanitize(
                result["due_string"], ["normalize_whitespace"]
            ).sanitized

        if isinstance(result.get("labels"), list):
            labels = []
            for label in result["labels"]:
                if not isinstance(label, str):
                    continue
                cleaned = self.sanitize(
                    label, ["normalize_whitespace", "remove_quote_wrapping"]
                ).sanitized.strip()
                if cleaned:
                    labels.append(cleaned)
            result["labels"] = labels

        return result

    def add_rule(self, rule: SanitizationRule) -> None:
        """Add a rule, replacing any existing rule with the same name."""
        for index, existing in enumerate(self._rules):
            if existing.name == rule.name:
                self._rules[index] = rule
                logger.info(f"Updated sanitization rule: {rule.name}")
                return
        self._rules.append(rule)
        logger.info(f"Added new sanitization rule: {rule.name}")

    def remove_rule(self, rule_name: str) -> bool:
        """Remove a rule by name. Returns False if no such rule exists."""
        initial_length = len(self._rules)
        self._rules = [rule for rule in self._rules if rule.name != rule_name]
        removed = len(self._rules) < initial_length
        if removed:
            logger.info(f"Removed sanitization rule: {rule_name}")
        return removed

    def toggle_rule(self, rule_name: str, enabled: bool | None = None) -> bool:
        """Enable, disable or flip a rule. Returns False for unknown names."""
        for rule in self._rules:
            if rule.name == rule_name:
                rule.enabled = (not rule.enabled) if enabled is None else enabled
                logger.info(
                    f"Rule {'enabled' if rule.enabled else 'disabled'}: {rule_name}"
                )
                return True
        logger.warning(f"Rule not found: {rule_name}")
        return False

    def get_rules(self) -> list[SanitizationRule]:
        return list(self._rules)
