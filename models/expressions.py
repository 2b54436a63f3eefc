"""Rule condition expressions: comparisons on named fields composed with all/any.

Expressions are plain data so rule files can be validated up front and
reloaded at runtime. Nothing here executes user-supplied code.
"""
import logging
from dataclasses import dataclass
from typing import Tuple, Union

from models.enums import MetricName

logger = logging.getLogger("tokenhealth.rules.expressions")

OPERATOR_MAP = {
    "<": lambda v, t: v < t,
    ">": lambda v, t: v > t,
    "<=": lambda v, t: v <= t,
    ">=": lambda v, t: v >= t,
    "==": lambda v, t: v == t,
    "!=": lambda v, t: v != t,
}

KNOWN_FIELDS = {m.value for m in MetricName}


class RuleDefinitionError(ValueError):
    """Raised when a rule or expression definition is malformed."""


@dataclass(frozen=True)
class Comparison:
    metric: str
    operator: str
    threshold: float

    def evaluate(self, fields):
        value = fields.get(self.metric)
        # Missing data never satisfies a comparison.
        if value is None:
            return False
        return OPERATOR_MAP[self.operator](value, self.threshold)

    def matched(self, fields):
        """Comparisons that held for these fields: [self] or []."""
        return [self] if self.evaluate(fields) else []

    def describe(self):
        return f"{self.metric} {self.operator} {self.threshold:g}"


@dataclass(frozen=True)
class AllOf:
    terms: Tuple["Expression", ...]

    def evaluate(self, fields):
        return all(t.evaluate(fields) for t in self.terms)

    def matched(self, fields):
        if not self.evaluate(fields):
            return []
        return [c for t in self.terms for c in t.matched(fields)]

    def describe(self):
        return " AND ".join(_wrap(t) for t in self.terms)


@dataclass(frozen=True)
class AnyOf:
    terms: Tuple["Expression", ...]

    def evaluate(self, fields):
        return any(t.evaluate(fields) for t in self.terms)

    def matched(self, fields):
        return [c for t in self.terms for c in t.matched(fields)]

    def describe(self):
        return " OR ".join(_wrap(t) for t in self.terms)


Expression = Union[Comparison, AllOf, AnyOf]


def _wrap(expr):
    text = expr.describe()
    return text if isinstance(expr, Comparison) else f"({text})"


def parse_expression(raw, where="expression"):
    """Parse a YAML/dict expression into Comparison/AllOf/AnyOf.

    Accepted shapes::

        {metric: health_score, operator: ">=", threshold: 70}
        {all: [<expr>, ...]}
        {any: [<expr>, ...]}
    """
    if not isinstance(raw, dict):
        raise RuleDefinitionError(f"{where}: expected a mapping, got {type(raw).__name__}")

    for key, combinator in (("all", AllOf), ("any", AnyOf)):
        if key in raw:
            if len(raw) != 1:
                raise RuleDefinitionError(f"{where}: '{key}' cannot be mixed with other keys")
            items = raw[key]
            if not isinstance(items, list) or not items:
                raise RuleDefinitionError(f"{where}: '{key}' needs a non-empty list")
            return combinator(tuple(
                parse_expression(item, f"{where}.{key}[{i}]") for i, item in enumerate(items)
            ))

    missing = [k for k in ("metric", "operator", "threshold") if k not in raw]
    if missing:
        raise RuleDefinitionError(f"{where}: missing {', '.join(missing)}")

    operator = raw["operator"]
    if operator not in OPERATOR_MAP:
        raise RuleDefinitionError(f"{where}: invalid operator {operator!r}")
    try:
        threshold = float(raw["threshold"])
    except (TypeError, ValueError):
        raise RuleDefinitionError(f"{where}: threshold {raw['threshold']!r} is not a number")

    metric = str(raw["metric"])
    if metric not in KNOWN_FIELDS:
        logger.warning(f"{where}: unknown metric '{metric}', comparison will never match")
    return Comparison(metric=metric, operator=operator, threshold=threshold)


def referenced_metrics(expr):
    if isinstance(expr, Comparison):
        return {expr.metric}
    found = set()
    for term in expr.terms:
        found |= referenced_metrics(term)
    return found
