"""Tests for template validation rules."""

from src.core.extraction.validation import apply_validation_rules
from src.core.schemas.template import ValidationRule, parse_validation_rules


def _rule(field, kind, value=None, message=None) -> ValidationRule:
    return ValidationRule(field=field, rule=kind, value=value, message=message)


def test_valid_record_has_no_violations():
    record = {"invoiceNumber": "INV-001", "totalAmount": 50.0}
    rules = [
        _rule("invoiceNumber", "required"),
        _rule("invoiceNumber", "pattern", r"^INV-\d+$"),
        _rule("totalAmount", "min", 0),
        _rule("totalAmount", "max", 100),
    ]
    assert apply_validation_rules(record, rules) == []


def test_required_rejects_null_and_empty_string():
    rules = [_rule("invoiceNumber", "required")]
    assert len(apply_validation_rules({"invoiceNumber": None}, rules)) == 1
    assert len(apply_validation_rules({"invoiceNumber": ""}, rules)) == 1
    assert len(apply_validation_rules({}, rules)) == 1
    assert apply_validation_rules({"invoiceNumber": 0}, rules) == []


def test_default_messages():
    violations = apply_validation_rules(
        {"totalAmount": 5, "code": "AB"},
        [
            _rule("invoiceNumber", "required"),
            _rule("totalAmount", "min", 10),
            _rule("totalAmount", "max", 1),
            _rule("code", "length", 3),
        ],
    )
    assert [v.message for v in violations] == [
        "invoiceNumber is required",
        "totalAmount must be at least 10",
        "totalAmount must be at most 1",
        "code must be exactly 3 characters",
    ]


def test_custom_message_wins():
    violations = apply_validation_rules(
        {"totalAmount": -1}, [_rule("totalAmount", "min", 0, "Amount cannot be negative")]
    )
    assert violations[0].message == "Amount cannot be negative"
    assert violations[0].kind == "min"


def test_min_max_ignore_non_numeric_values():
    record = {"totalAmount": "12", "flag": True, "missing": None}
    rules = [
        _rule("totalAmount", "min", 100),
        _rule("flag", "max", 0),
        _rule("missing", "min", 1),
    ]
    assert apply_validation_rules(record, rules) == []


def test_numeric_string_bound_is_accepted():
    violations = apply_validation_rules({"totalAmount": 5}, [_rule("totalAmount", "min", "10")])
    assert len(violations) == 1


def test_non_numeric_bound_is_skipped():
    assert apply_validation_rules({"totalAmount": 5}, [_rule("totalAmount", "min", "ten")]) == []


def test_invalid_regex_is_skipped():
    rules = [_rule("invoiceNumber", "pattern", "(")]
    assert apply_validation_rules({"invoiceNumber": "X"}, rules) == []


def test_pattern_only_checks_strings():
    rules = [_rule("invoiceNumber", "pattern", r"^\d+$")]
    assert apply_validation_rules({"invoiceNumber": 1234}, rules) == []
    assert len(apply_validation_rules({"invoiceNumber": "12a"}, rules)) == 1


def test_length_applies_to_lists():
    rules = [_rule("lineItems", "length", 2)]
    assert apply_validation_rules({"lineItems": [{}, {}]}, rules) == []
    assert len(apply_validation_rules({"lineItems": [{}]}, rules)) == 1


def test_rules_run_in_order_and_all_are_reported():
    violations = apply_validation_rules(
        {"invoiceNumber": "", "totalAmount": 500},
        [_rule("totalAmount", "max", 100), _rule("invoiceNumber", "required")],
    )
    assert [v.field for v in violations] == ["totalAmount", "invoiceNumber"]


def test_invalid_rule_entries_are_dropped():
    rules = parse_validation_rules(
        '[{"field": "totalAmount", "rule": "min", "value": 0}, {"field": "x", "rule": "between"}]'
    )
    assert len(rules) == 1
    assert rules[0].field == "totalAmount"
