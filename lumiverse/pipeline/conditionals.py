"""Default conditional-macro evaluator.

Resolves ``{{loomIf}}`` directives left in message text after macro
substitution::

    {{loomIf condition="{{char}}" equals="Lumia"}}yes{{loomElse}}no{{/loomIf}}

The innermost block is resolved first and the scan repeats, so nested
conditionals work. Operators: equals, notEquals, contains, gt, lt, gte, lte.
Without an operator the condition is truthy when it is non-blank.
"""

from __future__ import annotations

import logging
import math
import re

logger = logging.getLogger(__name__)

MAX_CONDITIONAL_ITERATIONS = 50

_LOOM_IF = re.compile(
    r'\{\{loomIf\s+condition="([^"]*)"'
    r'(?:\s+(equals|notEquals|contains|gt|lt|gte|lte)="([^"]*)")?\s*\}\}'
    r"((?:(?!\{\{loomIf\s)[\s\S])*?)"
    r"\{\{/loomIf\}\}"
)
_LOOM_ELSE = "{{loomElse}}"


_LEADING_NUMBER = re.compile(r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def _as_float(value: str) -> float:
    """Parse the longest numeric prefix ("12abc" is 12); NaN when there is none."""
    match = _LEADING_NUMBER.match(value.strip())
    if match is None:
        return math.nan
    return float(match.group(0))


def _evaluate(condition: str, operator: str | None, compare: str | None) -> bool:
    condition = condition.strip()
    if not operator:
        return bool(condition)
    compare = (compare or "").strip()
    if operator == "equals":
        return condition == compare
    if operator == "notEquals":
        return condition != compare
    if operator == "contains":
        return compare in condition
    # NaN compares False for every numeric operator
    left, right = _as_float(condition), _as_float(compare)
    if operator == "gt":
        return left > right
    if operator == "lt":
        return left < right
    if operator == "gte":
        return left >= right
    if operator == "lte":
        return left <= right
    return False


def _resolve(match: re.Match[str]) -> str:
    condition, operator, compare, body = match.groups()
    # only the segment between the first and second loomElse is the else branch
    parts = body.split(_LOOM_ELSE)
    if_part = parts[0]
    else_part = parts[1] if len(parts) > 1 else ""
    return if_part if _evaluate(condition, operator, compare) else else_part


def evaluate_conditionals(text: str) -> str:
    """Resolve every loomIf block in ``text``; non-strings pass through untouched."""
    if not text or not isinstance(text, str) or "{{loomIf" not in text:
        return text
    result = text
    for _ in range(MAX_CONDITIONAL_ITERATIONS):
        updated = _LOOM_IF.sub(_resolve, result)
        if updated == result:
            return result
        result = updated
    logger.warning("loomIf processing hit max iterations - possible malformed conditionals")
    return result
