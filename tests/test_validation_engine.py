"""
Tests for ValidationEngine

Covers the required/minLength scenarios, priority ordering, severity
buckets, exception containment and the built-in rule set.
"""
import asyncio

import pytest
from form_rules_lib import EvaluationContext, Rule, Severity, ValidationEngine


@pytest.fixture
def required_and_min_length():
    """required (priority 1) and minLength=3 (priority 2), both errors."""
    return [
        Rule(
            id="minLength",
            condition=lambda value, ctx: len(value or "") >= 3,
            message="Must be at least 3 characters",
            priority=2,
        ),
        Rule(
            id="required",
            condition=lambda value, ctx: (value or "").strip() != "",
            message="This field is required",
            priority=1,
        ),
    ]


@pytest.fixture
def engine(required_and_min_length):
    """Engine with only the two scenario rules."""
    return ValidationEngine(default_rules=required_and_min_length, real_time=False)


class TestScenarios:
    """Test the documented required/minLength outcomes."""

    def test_empty_value_fails_both(self, engine):
        """Test that "" fails required then minLength and scores 0."""
        result = engine.evaluate_sync("")

        assert result.is_valid is False
        assert [rule.id for rule in result.errors] == ["required", "minLength"]
        assert result.score == 0

    def test_short_value_fails_min_length(self, engine):
        """Test that "ab" fails only minLength and scores 50."""
        result = engine.evaluate_sync("ab")

        assert result.is_valid is False
        assert [rule.id for rule in result.errors] == ["minLength"]
        assert result.score == 50

    def test_valid_value(self, engine):
        """Test that "abc" passes with a full score."""
        result = engine.evaluate_sync("abc")

        assert result.is_valid is True
        assert result.errors == ()
        assert result.score == 100
        assert result.suggestions == ()

    def test_suggestions_for_errors(self, engine):
        """Test that failed error rules produce suggestions."""
        result = engine.evaluate_sync("ab")
        assert result.suggestions == (
            "Try adding more characters to meet the minimum length requirement",
        )

    def test_deterministic(self, engine):
        """Test that identical inputs give identical buckets, score and suggestions."""
        first = engine.evaluate_sync("ab")
        second = engine.evaluate_sync("ab")

        assert first.errors == second.errors
        assert first.score == second.score
        assert first.suggestions == second.suggestions


class TestSeverityBuckets:
    """Test that warnings and info do not affect validity."""

    def test_warning_and_info_are_advisory(self):
        """Test that only errors make a result invalid."""
        engine = ValidationEngine(
            default_rules=[
                Rule(id="w", condition=lambda v, c: False, severity=Severity.WARNING),
                Rule(id="i", condition=lambda v, c: False, severity=Severity.INFO),
            ]
        )
        result = engine.evaluate_sync("x")

        assert result.is_valid is True
        assert [rule.id for rule in result.warnings] == ["w"]
        assert [rule.id for rule in result.info] == ["i"]
        # 2 rules, budget 6, one warning costs 1
        assert result.score == 83

    def test_warnings_get_no_suggestions(self):
        """Test that suggestions are derived from errors only."""
        engine = ValidationEngine(
            default_rules=[
                Rule(id="noSpaces", condition=lambda v, c: " " not in v, severity=Severity.WARNING)
            ]
        )
        assert engine.evaluate_sync("a b").suggestions == ()

    def test_suggestions_can_be_disabled(self, required_and_min_length):
        """Test enable_suggestions=False."""
        engine = ValidationEngine(default_rules=required_and_min_length, enable_suggestions=False)
        assert engine.evaluate_sync("").suggestions == ()


class TestRuleManagement:
    """Test enabled flags, priorities and custom rules."""

    def test_disabled_rule_not_evaluated(self, engine):
        """Test that a disabled rule never runs and does not count towards the score."""
        engine.disable_rule("minLength")
        result = engine.evaluate_sync("ab")

        assert result.is_valid is True
        assert result.score == 100

    def test_priority_change_reorders(self, engine):
        """Test that updating a priority changes the evaluation order."""
        engine.update_rule("minLength", priority=0)
        result = engine.evaluate_sync("")
        assert [rule.id for rule in result.errors] == ["minLength", "required"]

    def test_custom_rule_added_after_defaults(self):
        """Test that custom rules run alongside the built-in ones."""
        engine = ValidationEngine(
            custom_rules=[
                Rule(
                    id="no-digits",
                    condition=lambda value, ctx: not any(ch.isdigit() for ch in value),
                    message="Digits are not allowed",
                    priority=9,
                )
            ]
        )
        result = engine.evaluate_sync("abc1")

        assert [rule.id for rule in result.errors] == ["no-digits"]
        assert result.suggestions == ("Fix: Digits are not allowed",)

    def test_context_reaches_predicates(self):
        """Test that the evaluation context is handed to predicates."""
        engine = ValidationEngine(
            default_rules=[
                Rule(
                    id="matches-country",
                    condition=lambda value, ctx: value.startswith(ctx.form_data["country"]),
                )
            ]
        )
        context = EvaluationContext(field_name="vat", form_data={"country": "GB"})

        assert engine.evaluate_sync("GB123", context).is_valid is True
        assert engine.evaluate_sync("FR123", context).is_valid is False

    def test_statistics(self, engine):
        """Test that statistics include registry counts and pass timing."""
        engine.evaluate_sync("abc")
        stats = engine.get_statistics()

        assert stats["total_rules"] == 2
        assert stats["evaluation_passes"] == 1
        assert stats["average_execution_time"] >= 0


class TestExceptionContainment:
    """Test that a raising predicate is excluded from the pass."""

    def test_raising_rule_is_excluded(self, required_and_min_length):
        """Test that a crashing rule lands in no bucket and the pass completes."""
        crashing = Rule(id="crash", condition=lambda value, ctx: value.missing_attribute, priority=0)
        engine = ValidationEngine(default_rules=required_and_min_length + [crashing])

        result = engine.evaluate_sync("abc")

        assert result.is_valid is True
        assert all(rule.id != "crash" for rule in result.errors + result.warnings + result.info)

    def test_later_rules_still_run(self, required_and_min_length):
        """Test that rules after a crashing rule are still evaluated."""
        crashing = Rule(id="crash", condition=lambda value, ctx: value.missing_attribute, priority=0)
        engine = ValidationEngine(default_rules=[crashing] + required_and_min_length)

        result = engine.evaluate_sync("ab")

        assert [rule.id for rule in result.errors] == ["minLength"]


class TestDeterminism:
    """Test that repeated passes over the same input agree."""

    def test_generator_condition_evaluates_every_pass(self):
        """Test that a rule built from a generator of conditions fails on every pass."""
        rule = Rule(id="g", condition=(c for c in [lambda value, ctx: False]))
        engine = ValidationEngine(default_rules=[rule])

        first = engine.evaluate_sync("x")
        second = engine.evaluate_sync("x")

        assert first.is_valid is False
        assert second.is_valid is False
        assert [r.id for r in second.errors] == ["g"]


class TestDisabledEngine:
    """Test the engine-wide switch."""

    def test_disabled_engine_is_trivially_valid(self, required_and_min_length):
        """Test that enabled=False returns a valid result without running rules."""
        calls = []
        rule = Rule(id="spy", condition=lambda value, ctx: calls.append(value) or False)
        engine = ValidationEngine(default_rules=[rule], enabled=False)

        result = engine.evaluate_sync("")

        assert result.is_valid is True
        assert result.score == 100
        assert calls == []


class TestDefaultRules:
    """Test the built-in field rules."""

    def test_only_basic_rules_enabled(self):
        """Test that required and the length bounds are the only enabled defaults."""
        engine = ValidationEngine()
        enabled = [rule.id for rule in engine.registry.enabled_in_order()]
        assert enabled == ["required", "minLength", "maxLength"]

    def test_enabling_email(self):
        """Test the email pattern once the rule is switched on."""
        engine = ValidationEngine()
        engine.enable_rule("email")

        assert engine.evaluate_sync("someone@example.com").is_valid is True
        result = engine.evaluate_sync("someone-at-example")
        assert [rule.id for rule in result.errors] == ["email"]
        assert result.suggestions == ("Try adding @ and a domain (e.g., example@domain.com)",)

    def test_max_length(self):
        """Test the 100 character bound."""
        engine = ValidationEngine()
        result = engine.evaluate_sync("x" * 101)
        assert [rule.id for rule in result.errors] == ["maxLength"]


class TestAsyncEvaluation:
    """Test evaluate() and the stored result."""

    def test_immediate_mode_resolves(self, required_and_min_length):
        """Test that real_time=False resolves the future in the same call."""
        engine = ValidationEngine(default_rules=required_and_min_length, real_time=False)

        async def run():
            future = engine.evaluate("ab")
            assert future.done()
            return await future

        result = asyncio.run(run())
        assert [rule.id for rule in result.errors] == ["minLength"]
        assert engine.result is result

    def test_debounced_calls_coalesce(self, required_and_min_length):
        """Test that rapid calls resolve with the last value's result."""
        completed = []
        engine = ValidationEngine(
            default_rules=required_and_min_length,
            validation_debounce_ms=10,
            on_validation_complete=completed.append,
        )

        async def run():
            first = engine.evaluate("")
            second = engine.evaluate("ab")
            third = engine.evaluate("abc")
            assert engine.is_validating
            return await asyncio.gather(first, second, third)

        results = asyncio.run(run())

        assert all(result is results[-1] for result in results)
        assert results[-1].is_valid is True
        assert len(completed) == 1
        assert engine.is_validating is False

    def test_clear_validation(self, engine):
        """Test that clear_validation resets the stored result."""
        async def run():
            await engine.evaluate("")

        asyncio.run(run())
        assert engine.result.is_valid is False

        engine.clear_validation()
        assert engine.result.is_valid is True
