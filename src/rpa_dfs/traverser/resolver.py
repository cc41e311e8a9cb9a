"""Template, selector and condition resolution against a user context."""

import operator
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog

from .context import UserContext, stringify
from .selectors import SelectorRegistry
from .types import CheckOperator, DataCheck

logger = structlog.get_logger()


TEMPLATE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal resolution problem observed during a run."""
    kind: str      # resolution_miss | selector_miss | condition_unparseable
    detail: str


def _parse_float(text: str) -> Optional[float]:
    try:
        return float(text)
    except (TypeError, ValueError):
        return None


def _strip_quotes(text: str) -> str:
    """Remove one pair of matching surrounding quotes."""
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]
    return text


class TemplateResolver:
    """
    Resolves ``{{key}}`` placeholders, selector constants and branch
    conditions for one run.

    Condition syntax is ``<left> <op> <right>`` where ``op`` is one of
    ``>``, ``<``, ``>=``, ``<=``, ``==``, ``!=`` or ``contains``, written
    with a single space on each side. Operators are searched in that order
    and the first one present wins. Anything that cannot be evaluated is
    false; nothing here raises.
    """

    NUMERIC_OPERATORS: dict[str, Callable[[float, float], bool]] = {
        ">": operator.gt,
        "<": operator.lt,
        ">=": operator.ge,
        "<=": operator.le,
    }

    EQUALITY_OPERATORS: dict[str, Callable[[str, str], bool]] = {
        "==": operator.eq,
        "!=": operator.ne,
    }

    # Search order when scanning a condition
    CONDITION_OPERATORS = (">", "<", ">=", "<=", "==", "!=", "contains")

    def __init__(
        self,
        context: UserContext,
        selectors: Optional[SelectorRegistry] = None,
        dotted_paths: bool = False,
    ):
        self.context = context
        self.selectors = selectors if selectors is not None else SelectorRegistry()
        self.dotted_paths = dotted_paths
        self.diagnostics: list[Diagnostic] = []

    # ==================== Templates ====================

    def resolve(self, template: str) -> str:
        """
        Substitute every ``{{expr}}`` found in ``template``.

        Missing keys leave the placeholder text untouched.
        """
        if not template:
            return template

        def replace(match: re.Match) -> str:
            expr = match.group(1).strip()
            found, value = self.lookup(expr)
            if found:
                resolved = stringify(value)
                logger.debug("template_resolved", expr=expr, value=resolved)
                return resolved

            self._record("resolution_miss", expr)
            logger.warning("template_variable_missing", expr=expr)
            return match.group(0)

        return TEMPLATE_PATTERN.sub(replace, template)

    def lookup(self, path: str) -> tuple[bool, Any]:
        """
        Find ``path`` in the context.

        The exact key always wins. With ``dotted_paths`` enabled a miss is
        retried by walking nested maps and lists one segment at a time.
        """
        found, value = self.context.lookup(path)
        if found or not self.dotted_paths or "." not in path:
            return found, value
        return self._navigate_path(self.context.data, path.split("."))

    def _navigate_path(self, data: Any, path: list[str]) -> tuple[bool, Any]:
        current = data
        for part in path:
            if isinstance(current, dict):
                if part not in current:
                    return False, None
                current = current[part]
            elif isinstance(current, list):
                try:
                    index = int(part)
                except ValueError:
                    return False, None
                if not 0 <= index < len(current):
                    return False, None
                current = current[index]
            else:
                return False, None
        return True, current

    # ==================== Selectors ====================

    def resolve_selector(self, selector: str) -> str:
        """
        Map a selector constant through the registry, then resolve templates.

        Non-constant selectors, and constants without a mapping, go straight
        to template resolution.
        """
        if not selector:
            return selector

        if self.selectors.is_constant(selector):
            mapped = self.selectors.get(selector)
            if mapped is not None:
                logger.debug("selector_constant_mapped", constant=selector, selector=mapped)
                selector = mapped
            else:
                self._record("selector_miss", selector)
                logger.warning("selector_constant_unknown", constant=selector)

        return self.resolve(selector)

    # ==================== Conditions ====================

    def evaluate_condition(self, expression: str) -> bool:
        """Evaluate a comparison expression after template resolution."""
        resolved = self.resolve(expression)
        logger.debug("condition_evaluating", expression=expression, resolved=resolved)

        for op in self.CONDITION_OPERATORS:
            token = f" {op} "
            if token not in resolved:
                continue

            left, _, right = resolved.partition(token)
            left, right = left.strip(), right.strip()

            if op in self.NUMERIC_OPERATORS:
                return self._compare_numbers(op, left, right, resolved)
            if op in self.EQUALITY_OPERATORS:
                return self.EQUALITY_OPERATORS[op](_strip_quotes(left), _strip_quotes(right))
            return _strip_quotes(right) in _strip_quotes(left)

        self._record("condition_unparseable", f"no operator in: {resolved}")
        logger.warning("condition_without_operator", expression=resolved)
        return False

    def _compare_numbers(self, op: str, left: str, right: str, resolved: str) -> bool:
        left_num = _parse_float(left)
        right_num = _parse_float(right)
        if left_num is None or right_num is None:
            self._record("condition_unparseable", f"non-numeric comparison: {resolved}")
            logger.warning("condition_non_numeric", left=left, operator=op, right=right)
            return False
        return self.NUMERIC_OPERATORS[op](left_num, right_num)

    def evaluate_data_check(self, check: Optional[DataCheck]) -> bool:
        """Evaluate a question node's structured check."""
        if check is None:
            return False

        found, value = self.lookup(check.data_path)
        if not found:
            logger.debug("data_path_missing", data_path=check.data_path)
            return False

        actual = stringify(value)
        expected = stringify(check.expected_value)

        if check.operator == CheckOperator.EQUALS.value:
            return actual == expected

        if check.operator == CheckOperator.GREATER_THAN.value:
            actual_num = _parse_float(actual)
            expected_num = _parse_float(expected)
            if actual_num is None or expected_num is None:
                self._record(
                    "condition_unparseable",
                    f"non-numeric greaterThan: {actual!r} > {expected!r}",
                )
                return False
            return actual_num > expected_num

        if check.operator == CheckOperator.CONTAINS.value:
            return expected in actual

        self._record("condition_unparseable", f"unknown data check operator: {check.operator}")
        logger.warning("data_check_operator_unknown", operator=check.operator)
        return False

    def _record(self, kind: str, detail: str) -> None:
        self.diagnostics.append(Diagnostic(kind=kind, detail=detail))
