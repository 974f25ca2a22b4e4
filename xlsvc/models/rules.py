"""Filter rule models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass(frozen=True)
class FilterRule:
    """
    A row-deletion condition: delete rows where `column` equals `value`.

    Attributes:
        column: Column letter or 1-based number as text (e.g. "F", "6")
        value: Value to match; "0" also matches empty cells on the server
    """

    column: str
    value: str

    @classmethod
    def parse(cls, text: str) -> "FilterRule":
        """
        Parse a rule from "COLUMN=VALUE" text.

        The column is upper-cased and both sides are stripped. An empty value
        is allowed ("F=" matches empty cells).

        Raises:
            ValueError: If the text has no '=' or an empty column
        """
        column, sep, value = text.partition("=")
        column = column.strip().upper()
        if not sep or not column:
            raise ValueError(f"Invalid filter rule {text!r}, expected COLUMN=VALUE")
        return cls(column=column, value=value.strip())

    def to_dict(self) -> dict:
        """Convert to wire format."""
        return {"column": self.column, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict) -> "FilterRule":
        """Create from wire format."""
        return cls(column=str(data.get("column", "")), value=str(data.get("value", "")))

    def __str__(self) -> str:
        return f"{self.column} = '{self.value}'"


# Ordered on the wire, compared as a set by the matcher
FilterRuleSet = list[FilterRule]

DEFAULT_FILTER_RULES: tuple[FilterRule, ...] = (
    FilterRule("F", "0"),
    FilterRule("G", "0"),
    FilterRule("H", "0"),
    FilterRule("I", "0"),
)


def rules_from_wire(data: Optional[Iterable[dict]]) -> FilterRuleSet:
    """
    Parse a wire list of rules; a missing/null list is an empty set.

    Raises:
        ValueError: If the list or one of its items is not in wire format
    """
    if not data:
        return []
    if isinstance(data, (str, bytes, dict)):
        raise ValueError(f"Filter rules must be a list, got {type(data).__name__}")

    rules = []
    for item in data:
        if not isinstance(item, dict):
            raise ValueError(f"Filter rule must be an object, got {item!r}")
        rules.append(FilterRule.from_dict(item))
    return rules


def rules_to_wire(rules: Iterable[FilterRule]) -> list[dict]:
    """Serialize rules to the wire list format."""
    return [rule.to_dict() for rule in rules]
