from decimal import Decimal

import pytest

from incentives.models.db.enums import ConditionField, ConditionOperator
from incentives.services.condition_evaluator import evaluate, is_supported
from incentives.services.errors import ConditionConfigurationError
from incentives.services.requirement_matcher import accumulate, explain, matches
from incentives.services.card_progression import RequirementSlot
from incentives.services.rule_types import ConditionRule, RequirementRule, SaleFact


def cond(field, operator, value):
    return ConditionRule(field=field, operator=operator, value=value)


def test_contains_is_case_insensitive():
    rule = cond(ConditionField.PRODUCT_NAME, ConditionOperator.CONTAINS, "BlueProtect")
    assert evaluate(rule, SaleFact(product_name="Lente blueprotect 1.67")) is True
    assert evaluate(rule, SaleFact(product_name="Lente Transitions")) is False


def test_not_contains_and_missing_field():
    rule = cond(ConditionField.PRODUCT_NAME, ConditionOperator.NOT_CONTAINS, "armação")
    assert evaluate(rule, SaleFact(product_name="Lente Premium")) is True
    assert evaluate(rule, SaleFact(product_name="ARMAÇÃO Titanium")) is False
    # An absent value contains nothing
    assert evaluate(rule, SaleFact()) is True


def test_equals_trims_and_ignores_case():
    rule = cond(ConditionField.PRODUCT_CATEGORY, ConditionOperator.EQUALS, " LENTES ")
    assert evaluate(rule, SaleFact(product_category="lentes")) is True
    assert evaluate(rule, SaleFact(product_category="lentes de contato")) is False
    not_equal = cond(ConditionField.PRODUCT_CODE, ConditionOperator.NOT_EQUALS, "BP-167")
    assert evaluate(not_equal, SaleFact(product_code="bp-167")) is False


def test_sale_value_compares_numerically():
    greater = cond(ConditionField.SALE_VALUE, ConditionOperator.GREATER_THAN, "500,00")
    less = cond(ConditionField.SALE_VALUE, ConditionOperator.LESS_THAN, "500")
    equal = cond(ConditionField.SALE_VALUE, ConditionOperator.EQUALS, "890")
    fact = SaleFact(sale_value=Decimal("890.00"))
    assert evaluate(greater, fact) is True
    assert evaluate(less, fact) is False
    assert evaluate(equal, fact) is True


def test_unparseable_sale_value_does_not_match():
    rule = cond(ConditionField.SALE_VALUE, ConditionOperator.GREATER_THAN, "100")
    assert evaluate(rule, SaleFact(sale_value="abc")) is False
    assert evaluate(rule, SaleFact(sale_value=None)) is False
    bad_reference = cond(ConditionField.SALE_VALUE, ConditionOperator.LESS_THAN, "cem")
    assert evaluate(bad_reference, SaleFact(sale_value=Decimal("10"))) is False


def test_dict_facts_are_supported():
    rule = cond(ConditionField.PRODUCT_NAME, ConditionOperator.CONTAINS, "lente")
    assert evaluate(rule, {"product_name": "LENTE X"}) is True


@pytest.mark.parametrize("field,operator", [
    (ConditionField.PRODUCT_NAME, ConditionOperator.GREATER_THAN),
    (ConditionField.PRODUCT_CATEGORY, ConditionOperator.LESS_THAN),
    (ConditionField.SALE_VALUE, ConditionOperator.CONTAINS),
])
def test_unsupported_pairs_raise_configuration_error(field, operator):
    assert is_supported(field, operator) is False
    with pytest.raises(ConditionConfigurationError):
        evaluate(cond(field, operator, "1"), SaleFact(product_name="x", sale_value=Decimal("1")))


def test_wire_values_are_accepted():
    assert is_supported("VALOR_VENDA", "MAIOR_QUE") is True
    assert is_supported("NOME_PRODUTO", "MAIOR_QUE") is False
    assert is_supported("NOPE", "CONTEM") is False


def test_requirement_needs_every_condition():
    requirement = RequirementRule(
        ordem=1,
        quantity=5,
        conditions=(
            cond(ConditionField.PRODUCT_NAME, ConditionOperator.CONTAINS, "lente"),
            cond(ConditionField.SALE_VALUE, ConditionOperator.GREATER_THAN, "300"),
        ),
    )
    assert matches(requirement, SaleFact(product_name="Lente A", sale_value=Decimal("450")))
    assert not matches(requirement, SaleFact(product_name="Lente A", sale_value=Decimal("120")))
    assert explain(requirement, SaleFact(product_name="Armação")) == "NOME_PRODUTO CONTEM 'lente' not satisfied"
    assert explain(requirement, SaleFact(product_name="Lente A", sale_value=Decimal("450"))) is None


def test_first_failure_short_circuits_later_misconfiguration():
    requirement = RequirementRule(
        ordem=1,
        quantity=1,
        conditions=(
            cond(ConditionField.PRODUCT_NAME, ConditionOperator.CONTAINS, "lente"),
            cond(ConditionField.PRODUCT_NAME, ConditionOperator.GREATER_THAN, "1"),
        ),
    )
    assert matches(requirement, SaleFact(product_name="Armação")) is False
    with pytest.raises(ConditionConfigurationError):
        matches(requirement, SaleFact(product_name="Lente"))


def test_accumulate_caps_at_target_and_returns_overflow():
    slot = RequirementSlot(card_number=1, ordem=1, target=5, accumulated=3)
    assert accumulate(slot, 4) == 2
    assert slot.accumulated == 5
    assert accumulate(slot, 3) == 3
    assert accumulate(slot, 0) == 0
