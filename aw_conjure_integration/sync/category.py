"""ActivityWatch categories - the rules that classify window events."""

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from .decode import DecodeError, field, nonempty_list, nonempty_string

__all__ = [
    "Category",
    "CategoryName",
    "RegexRule",
    "UNCATEGORIZED",
    "decode_categories",
    "decode_category_name",
    "name_to_string",
]

# A category is identified by its path, e.g. ("Work", "Programming")
CategoryName = tuple[str, ...]

NAME_SEPARATOR = ">"

# ActivityWatch files events that match no rule under this name
UNCATEGORIZED: CategoryName = ("Uncategorized",)


@dataclass(frozen=True)
class RegexRule:
    """Match events whose app or title matches ``pattern``."""

    pattern: str
    ignore_case: bool = False


@dataclass(frozen=True)
class Category:
    """A named category with an optional matching rule.

    Parent categories usually carry no rule of their own.
    """

    name: CategoryName
    rule: Optional[RegexRule] = None

    @classmethod
    def from_dict(cls, data: Any) -> "Category":
        """Create Category from an entry of the ActivityWatch export."""
        name = tuple(nonempty_list(field(data, "name"), nonempty_string))
        return cls(name=name, rule=_decode_rule(field(data, "rule")))

    def to_query_format(self) -> list:
        """Encode the way the ActivityWatch ``categorize`` function expects."""
        if self.rule is None:
            rule: dict = {"type": "none"}
        else:
            rule = {"type": "regex", "regex": self.rule.pattern}
            if self.rule.ignore_case:
                rule = {"ignore_case": True, **rule}
        return [list(self.name), rule]


def _decode_rule(data: Any) -> Optional[RegexRule]:
    rule_type = field(data, "type")
    if rule_type is None or rule_type == "none":
        return None
    if rule_type == "regex":
        pattern = field(data, "regex")
        if not isinstance(pattern, str):
            raise DecodeError(f"Expected a regex string, got: {pattern!r}")
        ignore_case = data.get("ignore_case", False)
        if ignore_case is None:
            ignore_case = False
        if not isinstance(ignore_case, bool):
            raise DecodeError(f"Expected ignore_case to be a boolean, got: {ignore_case!r}")
        return RegexRule(pattern=pattern, ignore_case=ignore_case)
    raise DecodeError(f"Unsupported category rule type: {rule_type!r}")


def name_to_string(name: Sequence[str]) -> str:
    """Render a category path as ``Work>Programming``."""
    return NAME_SEPARATOR.join(name)


def decode_categories(data: Any) -> list[Category]:
    """Decode the categories export.

    Accepts either the object written by the ActivityWatch web UI
    (``{"categories": [...]}``) or the bare list inside it.
    """
    if isinstance(data, dict):
        data = field(data, "categories")
    return nonempty_list(data, Category.from_dict)


def decode_category_name(value: Any, categories: Sequence[Category]) -> CategoryName:
    """Decode a category path and check that it names a known category.

    Unknown paths are rejected rather than dropped so that events are never
    silently lost.
    """
    name = tuple(nonempty_list(value, nonempty_string))
    if name != UNCATEGORIZED and not any(c.name == name for c in categories):
        raise DecodeError(
            "\n".join(
                [
                    "Unknown category name:",
                    name_to_string(name),
                    "Please add it to the list of categories in ActivityWatch "
                    "(and re-export them).",
                ]
            )
        )
    return name
