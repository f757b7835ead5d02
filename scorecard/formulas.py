"""
formulas.py — Compound and formula indicators.

A compound indicator's monthly goal/progress is the sum of its components'.
A formula indicator evaluates an arithmetic expression in which ``{id:N}``
stands for indicator N's value for the month, e.g. ``({id:101} + {id:102}) / 2``.

Only numbers, ``+ - * /`` and parentheses are evaluated; anything else, and any
evaluation error, yields 0.
"""

import ast
import logging
import math
import operator
import re
from typing import Optional, Sequence

from .models import MONTHS_PER_YEAR, Indicator, IndicatorType, value_at

logger = logging.getLogger(__name__)

_REFERENCE = re.compile(r"\{id:([^}]+)\}")
_UNSAFE = re.compile(r"[^0-9.+\-*/()\s]")

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}
_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


def _find(items: Sequence[Indicator], ref: object) -> Optional[Indicator]:
    key = str(ref).strip()
    return next((it for it in items if str(it.id) == key), None)


def _series(item: Indicator, field: str) -> list:
    return item.monthly_goals if field == "monthly_goals" else item.monthly_progress


def _eval_node(node: ast.AST) -> float:
    if isinstance(node, ast.Expression):
        return _eval_node(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        return float(node.value)
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        return _BINARY_OPS[type(node.op)](_eval_node(node.left), _eval_node(node.right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    raise ValueError(f"Unsupported expression node: {type(node).__name__}")


def evaluate_formula(
    formula: str,
    items: Sequence[Indicator],
    month: int,
    field: str = "monthly_progress",
) -> float:
    """Evaluate ``formula`` for one month.

    Args:
        formula: Expression with ``{id:N}`` references.
        items: Indicators the references resolve against.
        month: 0-based month index.
        field: 'monthly_progress' or 'monthly_goals'.

    Returns:
        Finite float; 0 for unsafe or failing expressions. Unknown
        references count as 0.
    """
    if not formula:
        return 0.0

    def _substitute(match: re.Match) -> str:
        dep = _find(items, match.group(1))
        if dep is None:
            return "0"
        return format(value_at(_series(dep, field), month), "f")

    expression = _REFERENCE.sub(_substitute, formula)
    if _UNSAFE.search(expression):
        logger.warning("Unsafe formula skipped: %s", expression)
        return 0.0

    try:
        result = _eval_node(ast.parse(expression, mode="eval"))
    except (SyntaxError, ValueError, ZeroDivisionError, OverflowError) as exc:
        logger.error("Formula %r failed: %s", formula, exc)
        return 0.0
    return result if math.isfinite(result) else 0.0


def resolve_monthly_series(
    item: Indicator,
    context: Optional[Sequence[Indicator]] = None,
) -> tuple[list, list]:
    """Monthly (goals, progress) of an indicator, expanding compound/formula types.

    Without a ``context`` the stored arrays are returned unchanged.
    """
    goals = list(item.monthly_goals)
    progress = list(item.monthly_progress)
    if not context:
        return goals, progress

    if item.indicator_type is IndicatorType.COMPOUND and item.component_ids:
        goals = [0.0] * MONTHS_PER_YEAR
        progress = [0.0] * MONTHS_PER_YEAR
        for comp_id in item.component_ids:
            child = _find(context, comp_id)
            if child is None:
                continue
            for m in range(MONTHS_PER_YEAR):
                goals[m] += value_at(child.monthly_goals, m)
                progress[m] += value_at(child.monthly_progress, m)
    elif item.indicator_type is IndicatorType.FORMULA and item.formula:
        goals = [evaluate_formula(item.formula, context, m, "monthly_goals")
                 for m in range(MONTHS_PER_YEAR)]
        progress = [evaluate_formula(item.formula, context, m, "monthly_progress")
                    for m in range(MONTHS_PER_YEAR)]
    return goals, progress
