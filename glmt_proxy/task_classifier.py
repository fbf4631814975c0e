"""
Keyword based reasoning activation.

The rule table is evaluated top to bottom and the first rule with a matching
keyword decides. Reasoning rules sit above the execution rule, so a prompt
that mixes both ends up with reasoning enabled.
"""

from typing import NamedTuple, Tuple

from .schemas import Effort, ThinkingConfig


class KeywordRule(NamedTuple):
    name: str
    keywords: Tuple[str, ...]
    enabled: bool
    effort: Effort


TASK_RULES: Tuple[KeywordRule, ...] = (
    KeywordRule("maximum", ("ultrathink",), True, "high"),
    KeywordRule(
        "high",
        ("think harder", "think very hard", "think deeply", "think intensely", "megathink"),
        True,
        "high",
    ),
    KeywordRule(
        "medium",
        ("think hard", "think carefully", "analyze", "analyse", "debug", "investigate",
         "refactor", "architecture", "design", "root cause"),
        True,
        "medium",
    ),
    KeywordRule("low", ("think", "explain", "review", "compare", "why "), True, "low"),
    KeywordRule(
        "execution",
        ("list files", "list the files", "run tests", "run the tests", "run the", "execute",
         "rename", "fix typo", "fix the typo", "format the", "install", "git commit",
         "git push", "git status", "delete the file", "move the file", "read the file",
         "open the file", "show me the", "print the"),
        False,
        "low",
    ),
)


def match_rule(prompt: str) -> KeywordRule | None:
    lowered = (prompt or "").lower()
    for rule in TASK_RULES:
        if any(keyword in lowered for keyword in rule.keywords):
            return rule
    return None


def classify_task(prompt: str, default_enabled: bool = True) -> ThinkingConfig:
    """Map prompt text to a ThinkingConfig. Pure and deterministic."""
    rule = match_rule(prompt)
    if rule is None:
        return ThinkingConfig(enabled=default_enabled, effort="medium", source="default")
    return ThinkingConfig(enabled=rule.enabled, effort=rule.effort, source=f"classifier:{rule.name}")
