"""
Tests for BusinessRuleEngine

Covers the price calculation scenario, action routing, applicability and
per-action exception isolation.
"""
import asyncio

import pytest
from form_rules_lib import (
    Action,
    BusinessRuleEngine,
    Condition,
    EvaluationContext,
    Rule,
    Severity,
)


@pytest.fixture
def engine():
    """Engine with the built-in business rules, evaluated immediately."""
    return BusinessRuleEngine(real_time=False)


@pytest.fixture
def order_context():
    """Order form with quantity, unit price and a 10% discount."""
    return EvaluationContext(
        field_name="quantity",
        form_data={"quantity": 2, "unitPrice": 10, "discount": 10},
    )


def always_fires(rule_id, *actions, severity=Severity.ERROR, priority=0):
    """A business rule whose invariant never holds."""
    return Rule(
        id=rule_id,
        severity=severity,
        priority=priority,
        condition=lambda value, ctx: False,
        actions=actions,
    )


class TestPriceCalculation:
    """Test the built-in price calculation."""

    def test_total_price_calculated(self, engine, order_context):
        """Test that 2 x 10 less 10% gives a total of 18."""
        result = engine.evaluate_sync(2, order_context)

        assert result.calculations["totalPrice"] == pytest.approx(18)
        assert [rule.id for rule in result.applied_rules] == ["price-calculation"]
        assert result.is_valid is True

    def test_current_total_does_not_fire(self, engine):
        """Test that an up-to-date total leaves the rule unapplied."""
        context = EvaluationContext(
            field_name="quantity",
            form_data={"quantity": 2, "unitPrice": 10, "discount": 10, "totalPrice": 18},
        )
        result = engine.evaluate_sync(2, context)

        assert result.applied_rules == ()
        assert dict(result.calculations) == {}

    def test_disabled_rule_never_applied(self, engine, order_context):
        """Test that a disabled price rule is absent from applied_rules."""
        engine.disable_rule("price-calculation")
        result = engine.evaluate_sync(2, order_context)

        assert "price-calculation" not in [rule.id for rule in result.applied_rules]
        assert "totalPrice" not in result.calculations

    def test_waits_for_unit_price(self, engine):
        """Test that the rule is not applicable until unitPrice has a value."""
        context = EvaluationContext(field_name="quantity", form_data={"quantity": 2})
        result = engine.evaluate_sync(2, context)
        assert result.applied_rules == ()


class TestBuiltInRules:
    """Test the built-in user rules."""

    def test_name_capitalized(self, engine):
        """Test that a lower-case name produces a transformation."""
        context = EvaluationContext(field_name="name", form_data={"name": "ada lovelace"})
        result = engine.evaluate_sync("ada lovelace", context)

        assert result.transformations["name"] == "Ada Lovelace"

    def test_capitalized_name_untouched(self, engine):
        """Test that a correctly capitalized name is left alone."""
        context = EvaluationContext(field_name="name", form_data={"name": "Ada Lovelace"})
        assert dict(engine.evaluate_sync("Ada Lovelace", context).transformations) == {}

    def test_invalid_email_is_an_error(self, engine):
        """Test that a malformed email produces the validation message."""
        context = EvaluationContext(field_name="email", form_data={"email": "nope"})
        result = engine.evaluate_sync("nope", context)

        assert result.is_valid is False
        assert result.errors == ("Email domain is not allowed",)

    def test_short_password(self, engine):
        """Test the eight character password minimum."""
        context = EvaluationContext(field_name="password", form_data={"password": "short"})
        result = engine.evaluate_sync("short", context)
        assert result.errors == ("Password must be at least 8 characters long",)

    def test_unrelated_field_does_not_trigger_email_rule(self, engine):
        """Test that rules for fields without values are skipped."""
        context = EvaluationContext(field_name="city", form_data={"city": "Wellington"})
        result = engine.evaluate_sync("Wellington", context)

        assert result.is_valid is True
        assert result.applied_rules == ()


class TestActionRouting:
    """Test where each action type's output ends up."""

    def test_every_action_type(self):
        """Test transformation, calculation, notification, validation and custom outputs."""
        rule = always_fires(
            "everything",
            Action(type="transformation", field="code", fn=lambda v, c: str(v).upper()),
            Action(type="calculation", field="double", fn=lambda v, c: v * 2),
            Action(type="notification", message="Heads up"),
            Action(type="validation", message="Not allowed"),
            Action(type="custom", field="audit", value="ignored"),
            Action(type="custom", fn=lambda v, c: {"seen": v}),
            severity=Severity.WARNING,
        )
        engine = BusinessRuleEngine(default_rules=[rule])

        result = engine.evaluate_sync(21)

        assert result.transformations["code"] == "21"
        assert result.calculations["double"] == 42
        assert result.notifications == ("Heads up",)
        assert result.warnings == ("Not allowed",)
        assert result.errors == ()
        assert result.is_valid is True
        assert result.custom_outputs["audit"] == 21
        assert result.custom_outputs["everything"] == {"seen": 21}

    def test_static_value_without_function(self):
        """Test that a calculation without fn uses its static value."""
        rule = always_fires("flat-fee", Action(type="calculation", field="fee", value=5))
        result = BusinessRuleEngine(default_rules=[rule]).evaluate_sync(None)
        assert result.calculations["fee"] == 5

    def test_later_rule_wins_on_same_field(self):
        """Test that outputs for the same key are overwritten in priority order."""
        first = always_fires("first", Action(type="calculation", field="x", value=1), priority=1)
        second = always_fires("second", Action(type="calculation", field="x", value=2), priority=2)
        result = BusinessRuleEngine(default_rules=[second, first]).evaluate_sync(None)
        assert result.calculations["x"] == 2

    def test_info_messages(self):
        """Test that validation messages follow the rule's severity."""
        rule = always_fires(
            "tip", Action(type="validation", message="Consider express shipping"), severity=Severity.INFO
        )
        result = BusinessRuleEngine(default_rules=[rule]).evaluate_sync(None)
        assert result.info == ("Consider express shipping",)

    def test_rule_applied_callback(self):
        """Test that the callback receives each applied action's output."""
        applied = []
        rule = always_fires("fee", Action(type="calculation", field="fee", value=5))
        engine = BusinessRuleEngine(
            default_rules=[rule], on_rule_applied=lambda r, output: applied.append((r.id, output))
        )
        engine.evaluate_sync(None)
        assert applied == [("fee", 5)]


class TestConditions:
    """Test declarative conditions as invariants."""

    def test_holding_condition_does_not_fire(self, order_context):
        """Test that quantity > 0 holding for quantity 2 leaves the rule unapplied."""
        rule = Rule(
            id="positive-quantity",
            condition=(Condition(field="quantity", operator="greater_than", value=0),),
            actions=(Action(type="validation", message="Quantity must be positive"),),
        )
        engine = BusinessRuleEngine(default_rules=[rule])

        assert engine.evaluate_sync(2, order_context).applied_rules == ()
        zero = EvaluationContext(field_name="quantity", form_data={"quantity": 0})
        assert engine.evaluate_sync(0, zero).errors == ("Quantity must be positive",)

    def test_condition_reads_other_field(self, order_context):
        """Test that a condition on another field reads the form data."""
        rule = Rule(
            id="bulk-discount",
            condition=(Condition(field="discount", operator="less_than", value=5),),
            actions=(Action(type="notification", message="Discount applied"),),
        )
        result = BusinessRuleEngine(default_rules=[rule]).evaluate_sync(2, order_context)
        assert result.notifications == ("Discount applied",)


class TestExceptionIsolation:
    """Test that failures stay inside one rule or action."""

    def test_raising_action_has_no_effect(self):
        """Test that a failing action is skipped and the next one still runs."""
        rule = always_fires(
            "partial",
            Action(type="calculation", field="broken", fn=lambda v, c: 1 / 0),
            Action(type="calculation", field="ok", value=1),
        )
        result = BusinessRuleEngine(default_rules=[rule]).evaluate_sync(None)

        assert "broken" not in result.calculations
        assert result.calculations["ok"] == 1

    def test_raising_condition_skips_rule(self):
        """Test that a failing condition leaves its rule unapplied."""
        failed = []
        crashing = Rule(
            id="crash",
            condition=lambda value, ctx: value["missing"],
            actions=(Action(type="validation", message="never"),),
        )
        engine = BusinessRuleEngine(
            default_rules=[crashing], on_rule_failed=lambda r, e: failed.append(r.id)
        )
        result = engine.evaluate_sync({})

        assert result.applied_rules == ()
        assert result.is_valid is True
        assert failed == ["crash"]

    def test_later_rules_still_run(self):
        """Test that a rule after a crashing condition still fires."""
        crashing = Rule(
            id="crash",
            priority=0,
            condition=lambda value, ctx: value["missing"],
            actions=(Action(type="validation", message="never"),),
        )
        after = always_fires(
            "after", Action(type="validation", message="Still checked"), priority=1
        )
        engine = BusinessRuleEngine(default_rules=[crashing, after])

        result = engine.evaluate_sync({})

        assert [rule.id for rule in result.applied_rules] == ["after"]
        assert result.errors == ("Still checked",)
        assert result.is_valid is False


class TestEngineSwitches:
    """Test enabled and real-time settings."""

    def test_disabled_engine(self, order_context):
        """Test that enabled=False applies nothing."""
        engine = BusinessRuleEngine(enabled=False)
        result = engine.evaluate_sync(2, order_context)

        assert result.is_valid is True
        assert result.applied_rules == ()

    def test_debounced_evaluate(self, order_context):
        """Test that evaluate() resolves with the last call's result."""
        engine = BusinessRuleEngine(evaluation_debounce_ms=5)

        async def run():
            engine.evaluate(1, order_context)
            return await engine.evaluate(2, order_context)

        result = asyncio.run(run())
        assert result.calculations["totalPrice"] == pytest.approx(18)
        assert engine.result is result
