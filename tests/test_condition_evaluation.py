import pytest

from gscms.services.automation_service import evaluate_condition, evaluate_conditions


def _cond(field, operator, value, logic=None):
    return {"field": field, "operator": operator, "value": value, "logic": logic}


CONTEXT = {
    "priority": "HIGH",
    "quantity": 12,
    "total_cost": 1250.5,
    "is_rush": True,
    "title": "Steel brackets for line 4",
    "inquiry": {"status": "SUBMITTED", "items": [{"name": "Bracket A-12"}]},
    "notes": None,
}


def test_no_conditions_always_match():
    assert evaluate_conditions([], CONTEXT) is True
    assert evaluate_conditions(None, CONTEXT) is True


def test_equals_is_strict_about_types():
    assert evaluate_condition(_cond("priority", "equals", "HIGH"), CONTEXT) is True
    assert evaluate_condition(_cond("quantity", "equals", "12"), CONTEXT) is False
    assert evaluate_condition(_cond("is_rush", "equals", 1), CONTEXT) is False
    assert evaluate_condition(_cond("is_rush", "equals", True), CONTEXT) is True
    assert evaluate_condition(_cond("quantity", "not_equals", "12"), CONTEXT) is True


def test_dotted_paths_resolve_dicts_and_list_indexes():
    assert evaluate_condition(_cond("inquiry.status", "equals", "SUBMITTED"), CONTEXT) is True
    assert evaluate_condition(_cond("inquiry.items.0.name", "equals", "Bracket A-12"), CONTEXT) is True
    assert evaluate_condition(_cond("inquiry.items.3.name", "equals", None), CONTEXT) is True
    assert evaluate_condition(_cond("inquiry.missing.deeper", "equals", None), CONTEXT) is True


def test_contains_uses_text_forms():
    assert evaluate_condition(_cond("title", "contains", "brackets"), CONTEXT) is True
    assert evaluate_condition(_cond("title", "contains", "Brackets"), CONTEXT) is False
    assert evaluate_condition(_cond("quantity", "contains", 2), CONTEXT) is True
    assert evaluate_condition(_cond("is_rush", "contains", "true"), CONTEXT) is True
    assert evaluate_condition(_cond("notes", "contains", ""), CONTEXT) is True
    assert evaluate_condition(_cond("notes", "contains", "x"), CONTEXT) is False


def test_numeric_comparisons_coerce_and_treat_non_numbers_as_false():
    assert evaluate_condition(_cond("total_cost", "greater_than", 1000), CONTEXT) is True
    assert evaluate_condition(_cond("quantity", "less_than", "20"), CONTEXT) is True
    assert evaluate_condition(_cond("priority", "greater_than", 0), CONTEXT) is False
    assert evaluate_condition(_cond("priority", "less_than", 0), CONTEXT) is False
    assert evaluate_condition(_cond("notes", "greater_than", -1), CONTEXT) is False
    assert evaluate_condition(_cond("missing", "less_than", 100), CONTEXT) is False


def test_in_and_not_in_require_a_list():
    assert evaluate_condition(_cond("priority", "in", ["HIGH", "URGENT"]), CONTEXT) is True
    assert evaluate_condition(_cond("priority", "not_in", ["LOW", "MEDIUM"]), CONTEXT) is True
    assert evaluate_condition(_cond("quantity", "in", ["12"]), CONTEXT) is False
    assert evaluate_condition(_cond("priority", "in", "HIGH"), CONTEXT) is False
    assert evaluate_condition(_cond("priority", "not_in", "LOW"), CONTEXT) is False


def test_unknown_operator_never_matches():
    assert evaluate_condition(_cond("priority", "starts_with", "H"), CONTEXT) is False
    assert evaluate_conditions([_cond("priority", "starts_with", "H")], CONTEXT) is False


@pytest.mark.parametrize(
    ("conditions", "expected"),
    [
        # logic joins a condition to the one after it
        ([_cond("priority", "equals", "LOW", "OR"), _cond("quantity", "equals", 12)], True),
        ([_cond("priority", "equals", "LOW", "AND"), _cond("quantity", "equals", 12)], False),
        ([_cond("priority", "equals", "LOW"), _cond("quantity", "equals", 12)], False),
        # first condition is always ANDed into the initial True
        ([_cond("priority", "equals", "LOW", "OR")], False),
        # last condition's connector is unused
        ([_cond("priority", "equals", "HIGH", "OR")], True),
        # strict left fold: (False OR True) AND False
        (
            [
                _cond("priority", "equals", "LOW", "OR"),
                _cond("quantity", "equals", 12, "AND"),
                _cond("is_rush", "equals", False),
            ],
            False,
        ),
        # (True AND False) OR True
        (
            [
                _cond("priority", "equals", "HIGH", "AND"),
                _cond("quantity", "equals", 99, "OR"),
                _cond("is_rush", "equals", True),
            ],
            True,
        ),
    ],
)
def test_conditions_fold_left_to_right(conditions, expected):
    assert evaluate_conditions(conditions, CONTEXT) is expected
