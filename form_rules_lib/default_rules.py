"""
Built-in rules for the three engines.

Every condition states the invariant a well-formed form satisfies. Field and
cross-field rules are reported when their invariant is violated; business
rules run their actions when it is violated.

The builders return fresh lists so each engine owns its own registry.
"""

import math
import re
from datetime import date, datetime
from typing import Any, List, Mapping

from .condition_evaluator import ConditionEvaluator
from .models import Action, Condition, Rule, Severity

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^[+]?[1-9]\d{0,15}$")
URL_PATTERN = re.compile(r"^https?://.+")
STRONG_PASSWORD_PATTERN = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$"
)
ALPHANUMERIC_PATTERN = re.compile(r"^[a-zA-Z0-9]+$")
NO_SPECIAL_CHARS_PATTERN = re.compile(r"^[a-zA-Z0-9\s]+$")

UNAVAILABLE_USERNAMES = frozenset(["admin", "user", "test", "demo"])
MINIMUM_AGE = 18


def _text(value: Any) -> str:
    return "" if value is None else str(value)


# ----------------------------------------------------------------------
# Field validation
# ----------------------------------------------------------------------


def default_field_rules() -> List[Rule]:
    """Single-value rules; only required and the length bounds start enabled."""
    return [
        Rule(
            id="required",
            name="Required Field",
            condition=lambda value, ctx: _text(value).strip() != "",
            message="This field is required",
            severity=Severity.ERROR,
            category="format",
            priority=1,
        ),
        Rule(
            id="minLength",
            name="Minimum Length",
            condition=lambda value, ctx: len(_text(value)) >= 3,
            message="Must be at least 3 characters",
            severity=Severity.ERROR,
            category="length",
            priority=2,
        ),
        Rule(
            id="maxLength",
            name="Maximum Length",
            condition=lambda value, ctx: len(_text(value)) <= 100,
            message="Must be no more than 100 characters",
            severity=Severity.ERROR,
            category="length",
            priority=2,
        ),
        Rule(
            id="email",
            name="Email Format",
            condition=lambda value, ctx: EMAIL_PATTERN.search(_text(value)) is not None,
            message="Please enter a valid email address",
            severity=Severity.ERROR,
            category="pattern",
            enabled=False,
            priority=3,
        ),
        Rule(
            id="phone",
            name="Phone Format",
            condition=lambda value, ctx: (
                PHONE_PATTERN.search(re.sub(r"\s", "", _text(value))) is not None
            ),
            message="Please enter a valid phone number",
            severity=Severity.ERROR,
            category="pattern",
            enabled=False,
            priority=3,
        ),
        Rule(
            id="url",
            name="URL Format",
            condition=lambda value, ctx: URL_PATTERN.search(_text(value)) is not None,
            message="Please enter a valid URL",
            severity=Severity.ERROR,
            category="pattern",
            enabled=False,
            priority=3,
        ),
        Rule(
            id="strongPassword",
            name="Strong Password",
            condition=lambda value, ctx: (
                STRONG_PASSWORD_PATTERN.search(_text(value)) is not None
            ),
            message="Password must contain uppercase, lowercase, number, and special character",
            severity=Severity.WARNING,
            category="pattern",
            enabled=False,
            priority=4,
        ),
        Rule(
            id="noSpaces",
            name="No Spaces",
            condition=lambda value, ctx: " " not in _text(value),
            message="Spaces are not allowed",
            severity=Severity.WARNING,
            category="format",
            enabled=False,
            priority=5,
        ),
        Rule(
            id="alphanumeric",
            name="Alphanumeric Only",
            condition=lambda value, ctx: ALPHANUMERIC_PATTERN.search(_text(value)) is not None,
            message="Only letters and numbers are allowed",
            severity=Severity.WARNING,
            category="pattern",
            enabled=False,
            priority=5,
        ),
        Rule(
            id="noSpecialChars",
            name="No Special Characters",
            condition=lambda value, ctx: (
                NO_SPECIAL_CHARS_PATTERN.search(_text(value)) is not None
            ),
            message="Special characters are not allowed",
            severity=Severity.WARNING,
            category="pattern",
            enabled=False,
            priority=5,
        ),
    ]


# ----------------------------------------------------------------------
# Cross-field validation
# ----------------------------------------------------------------------


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value)).date()


def _age_on(birth_date: date, today: date) -> int:
    return today.year - birth_date.year


def _password_avoids_identity(values: Mapping[str, Any], ctx: Any) -> bool:
    password = _text(values.get("password")).lower()
    username = _text(values.get("username")).lower()
    email_local = _text(values.get("email")).split("@")[0].lower()
    return username not in password and email_local not in password


def _address_complete(values: Mapping[str, Any], ctx: Any) -> bool:
    address_fields = ("street", "city", "state", "zipCode")
    filled = [name for name in address_fields if _text(values.get(name)).strip()]
    return not filled or len(filled) == len(address_fields)


def default_cross_field_rules() -> List[Rule]:
    """Multi-field invariants, evaluated once every listed field has a value."""
    return [
        Rule(
            id="password-confirmation",
            name="Password Confirmation",
            description="Password and confirmation must match",
            fields=("password", "confirmPassword"),
            condition=lambda values, ctx: values["password"] == values["confirmPassword"],
            message="Passwords do not match",
            severity=Severity.ERROR,
            category="custom",
            priority=1,
        ),
        Rule(
            id="email-confirmation",
            name="Email Confirmation",
            description="Email and confirmation must match",
            fields=("email", "confirmEmail"),
            condition=lambda values, ctx: values["email"] == values["confirmEmail"],
            message="Email addresses do not match",
            severity=Severity.ERROR,
            category="custom",
            priority=1,
        ),
        Rule(
            id="date-range",
            name="Date Range Validation",
            description="Start date must be before end date",
            fields=("startDate", "endDate"),
            condition=lambda values, ctx: (
                _as_date(values["startDate"]) < _as_date(values["endDate"])
            ),
            message="Start date must be before end date",
            severity=Severity.ERROR,
            category="custom",
            priority=2,
        ),
        Rule(
            id="age-verification",
            name="Age Verification",
            description="User must be at least 18 years old",
            fields=("birthDate",),
            condition=lambda values, ctx: (
                _age_on(_as_date(values["birthDate"]), date.today()) >= MINIMUM_AGE
            ),
            message="You must be at least 18 years old",
            severity=Severity.ERROR,
            category="custom",
            priority=3,
        ),
        Rule(
            id="phone-email-consistency",
            name="Phone Email Consistency",
            description="Phone and email should be consistent",
            fields=("phone", "email"),
            condition=lambda values, ctx: (
                len(_text(values["phone"])) > 0 and len(_text(values["email"])) > 0
            ),
            message="Please provide both phone and email",
            severity=Severity.WARNING,
            category="custom",
            priority=4,
        ),
        Rule(
            id="username-availability",
            name="Username Availability",
            description="Username should be available",
            fields=("username",),
            condition=lambda values, ctx: (
                _text(values["username"]).lower() not in UNAVAILABLE_USERNAMES
            ),
            message="Username is not available",
            severity=Severity.ERROR,
            category="custom",
            priority=5,
        ),
        Rule(
            id="password-strength-context",
            name="Password Strength Context",
            description="Password should not contain username or email",
            fields=("password", "username", "email"),
            condition=_password_avoids_identity,
            message="Password should not contain username or email",
            severity=Severity.WARNING,
            category="custom",
            priority=6,
        ),
        Rule(
            # Never fires: the readiness gate waits for all four fields, which
            # always satisfies the completeness check.
            id="address-completeness",
            name="Address Completeness",
            description="Address fields should be complete",
            fields=("street", "city", "state", "zipCode"),
            condition=_address_complete,
            message="Please provide complete address information",
            severity=Severity.INFO,
            category="custom",
            priority=7,
        ),
    ]


# ----------------------------------------------------------------------
# Business rules
# ----------------------------------------------------------------------


def _number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def total_price(form_data: Mapping[str, Any]) -> float:
    """quantity * unitPrice, less a percentage discount."""
    quantity = _number(form_data.get("quantity"))
    unit_price = _number(form_data.get("unitPrice"))
    discount = _number(form_data.get("discount"))
    return quantity * unit_price * (1 - discount / 100)


def _total_price_is_current(value: Any, ctx: Any) -> bool:
    stored = ctx.form_data.get("totalPrice")
    return stored is not None and math.isclose(_number(stored), total_price(ctx.form_data))


def _field_value(field_name: str, value: Any, ctx: Any) -> Any:
    return ConditionEvaluator.resolve_operand(
        Condition(operator="custom", field=field_name), value, ctx
    )


def _capitalize_words(value: Any) -> str:
    return re.sub(r"\b\w", lambda match: match.group(0).upper(), _text(value))


def default_business_rules() -> List[Rule]:
    """Business invariants whose violation triggers validation, transformation or calculation."""
    return [
        Rule(
            id="email-domain-validation",
            name="Email Domain Validation",
            description="Validate email domain against allowed list",
            category="user",
            priority=1,
            condition=(Condition(field="email", operator="regex", value=EMAIL_PATTERN),),
            actions=(Action(type="validation", message="Email domain is not allowed"),),
        ),
        Rule(
            id="password-strength",
            name="Password Strength Validation",
            description="Enforce strong password requirements",
            category="user",
            priority=2,
            condition=(
                Condition(
                    field="password",
                    operator="custom",
                    fn=lambda value, ctx: len(_text(value)) >= 8,
                ),
            ),
            actions=(
                Action(type="validation", message="Password must be at least 8 characters long"),
            ),
        ),
        Rule(
            id="phone-format",
            name="Phone Format Validation",
            description="Validate phone number format",
            category="user",
            priority=3,
            condition=(Condition(field="phone", operator="regex", value=PHONE_PATTERN),),
            actions=(Action(type="validation", message="Please enter a valid phone number"),),
        ),
        Rule(
            id="name-capitalization",
            name="Name Capitalization",
            description="Auto-capitalize names",
            category="user",
            priority=4,
            condition=(
                Condition(
                    field="name",
                    operator="custom",
                    fn=lambda value, ctx: _text(value) == _capitalize_words(value),
                ),
            ),
            actions=(
                Action(
                    type="transformation",
                    field="name",
                    fn=lambda value, ctx: _capitalize_words(_field_value("name", value, ctx)),
                ),
            ),
        ),
        Rule(
            id="price-calculation",
            name="Price Calculation",
            description="Calculate price based on quantity and discount",
            category="pricing",
            priority=5,
            fields=("quantity", "unitPrice"),
            condition=_total_price_is_current,
            actions=(
                Action(
                    type="calculation",
                    field="totalPrice",
                    fn=lambda value, ctx: total_price(ctx.form_data),
                ),
            ),
        ),
    ]
