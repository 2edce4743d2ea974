"""Condition evaluation: one (field, operator, value) rule against one sale line.

String fields (product name, code, category) compare case-insensitively:
``CONTEM``/``NAO_CONTEM`` by substring, ``IGUAL_A``/``NAO_IGUAL_A`` by exact
match after trimming. ``VALOR_VENDA`` compares numerically; if either side
does not parse as a decimal the condition simply does not match.

A field/operator pair outside those tables is a configuration error, raised
as ConditionConfigurationError so callers can tell "rule does not match"
apart from "rule can never be evaluated".
"""
from __future__ import annotations

from typing import Any

from incentives.models.db.enums import ConditionField, ConditionOperator
from incentives.services.errors import ConditionConfigurationError
from incentives.utils.money import to_decimal

STRING_FIELDS = frozenset({
    ConditionField.PRODUCT_NAME,
    ConditionField.PRODUCT_CODE,
    ConditionField.PRODUCT_CATEGORY,
})
NUMERIC_FIELDS = frozenset({ConditionField.SALE_VALUE})

STRING_OPERATORS = frozenset({
    ConditionOperator.CONTAINS,
    ConditionOperator.NOT_CONTAINS,
    ConditionOperator.EQUALS,
    ConditionOperator.NOT_EQUALS,
})
NUMERIC_OPERATORS = frozenset({
    ConditionOperator.EQUALS,
    ConditionOperator.NOT_EQUALS,
    ConditionOperator.GREATER_THAN,
    ConditionOperator.LESS_THAN,
})

# Attribute holding each field on SaleFact / SaleRecord
FIELD_ATTRIBUTES: dict[ConditionField, str] = {
    ConditionField.PRODUCT_NAME: "product_name",
    ConditionField.PRODUCT_CODE: "product_code",
    ConditionField.PRODUCT_CATEGORY: "product_category",
    ConditionField.SALE_VALUE: "sale_value",
}


def _coerce(enum_cls, raw):
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(raw)
    except ValueError:
        return None


def is_supported(field: Any, operator: Any) -> bool:
    f = _coerce(ConditionField, field)
    op = _coerce(ConditionOperator, operator)
    if f is None or op is None:
        return False
    if f in STRING_FIELDS:
        return op in STRING_OPERATORS
    return op in NUMERIC_OPERATORS


def _fact_value(fact: Any, field: ConditionField) -> Any:
    attr = FIELD_ATTRIBUTES[field]
    if isinstance(fact, dict):
        return fact.get(attr)
    return getattr(fact, attr, None)


def _compare_text(operator: ConditionOperator, actual: Any, reference: str) -> bool:
    haystack = str(actual).strip().casefold() if actual is not None else ""
    needle = reference.strip().casefold()
    if operator == ConditionOperator.CONTAINS:
        return needle in haystack
    if operator == ConditionOperator.NOT_CONTAINS:
        return needle not in haystack
    if operator == ConditionOperator.EQUALS:
        return haystack == needle
    return haystack != needle


def _compare_number(operator: ConditionOperator, actual: Any, reference: str) -> bool:
    ref = to_decimal(reference)
    value = to_decimal(actual)
    if ref is None or value is None:
        return False
    if operator == ConditionOperator.GREATER_THAN:
        return value > ref
    if operator == ConditionOperator.LESS_THAN:
        return value < ref
    if operator == ConditionOperator.EQUALS:
        return value == ref
    return value != ref


def evaluate(condition: Any, fact: Any) -> bool:
    """Return True when ``fact`` satisfies ``condition``.

    ``condition`` needs ``field``, ``operator`` and ``value`` attributes (ORM
    Condition, ConditionRule or schema object). ``fact`` is a SaleFact, an
    object with the same attribute names, or a dict keyed by them.
    """
    field = _coerce(ConditionField, condition.field)
    operator = _coerce(ConditionOperator, condition.operator)
    if field is None or operator is None or not is_supported(field, operator):
        raise ConditionConfigurationError(
            f"Operator {getattr(condition.operator, 'value', condition.operator)!s} "
            f"cannot be applied to field {getattr(condition.field, 'value', condition.field)!s}"
        )
    reference = "" if condition.value is None else str(condition.value)
    actual = _fact_value(fact, field)
    if field in NUMERIC_FIELDS:
        return _compare_number(operator, actual, reference)
    return _compare_text(operator, actual, reference)


__all__ = [
    "evaluate",
    "is_supported",
    "ConditionConfigurationError",
    "STRING_FIELDS",
    "NUMERIC_FIELDS",
    "STRING_OPERATORS",
    "NUMERIC_OPERATORS",
]
