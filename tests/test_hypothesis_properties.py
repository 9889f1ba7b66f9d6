"""
Hypothesis Property-Based Tests.

Verifies invariants that must hold for any input:
- Plan ceilings are monotonic in tier
- API key format check accepts exactly prefix + 64 lowercase hex digits
- The Rust formatter is idempotent
- The rate limiter admits at most `ceiling` hits per window
- Domain model validation
"""

import asyncio
import string

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from pydantic import ValidationError

from speedformat.models.api import APIKeyCreateRequest, FormatRequest, Language, RegisterRequest
from speedformat.models.domain import AuthType, CallerIdentity, QuotaDecision
from speedformat.services.api_key import is_valid_key_format
from speedformat.services.formatter import RustBasicFormatter
from speedformat.services.plans import PLAN_ORDER, api_rate_limit, limits_for, monthly_limit
from speedformat.services.rate_limit import InMemoryRateLimiter
from tests.factories import FakeClock

# ============================================================================
# Hypothesis Strategies - Reusable data generators
# ============================================================================

hex_bodies = st.text(alphabet="0123456789abcdef", min_size=64, max_size=64)
plan_pairs = st.tuples(st.sampled_from(PLAN_ORDER), st.sampled_from(PLAN_ORDER))

rust_lines = st.lists(
    st.text(
        alphabet=string.ascii_letters + string.digits + " {}(),;=\"'_",
        max_size=30,
    ),
    max_size=15,
)


class TestPlanMonotonicity:
    """Higher tiers never get lower ceilings."""

    @given(plan_pairs)
    def test_ceilings_monotonic(self, pair):
        low, high = sorted(pair, key=PLAN_ORDER.index)
        assert monthly_limit(low) <= monthly_limit(high)
        assert api_rate_limit(low) <= api_rate_limit(high)
        assert limits_for(low).public_rate_limit <= limits_for(high).public_rate_limit


class TestAPIKeyFormatProperties:
    """Properties of is_valid_key_format."""

    @given(hex_bodies)
    def test_generated_shape_accepted(self, body):
        assert is_valid_key_format("sf_" + body)

    @given(hex_bodies, st.integers(min_value=0, max_value=63), st.characters())
    def test_any_non_hex_char_rejected(self, body, position, char):
        if char in "0123456789abcdef":
            return
        key = "sf_" + body[:position] + char + body[position + 1 :]
        assert not is_valid_key_format(key)

    @given(st.text(max_size=80))
    def test_arbitrary_text_accepted_only_if_well_formed(self, text):
        expected = (
            len(text) == 67
            and text.startswith("sf_")
            and all(c in "0123456789abcdef" for c in text[3:])
        )
        assert is_valid_key_format(text) == expected


class TestRustFormatterProperties:
    """Properties of RustBasicFormatter."""

    @given(rust_lines)
    def test_idempotent(self, lines):
        formatter = RustBasicFormatter()
        once = formatter.format_sync("\n".join(lines))
        assert formatter.format_sync(once) == once

    @given(rust_lines)
    def test_output_ends_with_newline_or_is_empty(self, lines):
        out = RustBasicFormatter().format_sync("\n".join(lines))
        assert out == "" or out.endswith("\n")


class TestRateLimiterProperties:
    """Properties of InMemoryRateLimiter."""

    @given(st.integers(min_value=1, max_value=30), st.integers(min_value=0, max_value=60))
    @settings(max_examples=50, suppress_health_check=[HealthCheck.too_slow])
    def test_admits_at_most_ceiling_per_window(self, ceiling, hits):
        limiter = InMemoryRateLimiter(clock=FakeClock())

        async def _run():
            return [await limiter.admit("k", 60, ceiling) for _ in range(hits)]

        decisions = asyncio.run(_run())
        assert sum(d.admitted for d in decisions) == min(ceiling, hits)
        assert all(d.remaining >= 0 for d in decisions)


class TestDomainModelProperties:
    """Domain model validation."""

    @given(st.integers(min_value=1))
    def test_anonymous_cannot_carry_account(self, account_id):
        with pytest.raises(ValueError):
            CallerIdentity(
                account_id=account_id, plan=PLAN_ORDER[0], auth_type=AuthType.ANONYMOUS
            )

    @given(st.integers(min_value=0, max_value=10**6), st.integers(min_value=0, max_value=10**6))
    def test_quota_decision_accepts_non_negative(self, usage, limit):
        decision = QuotaDecision(allowed=usage < limit, current_usage=usage, monthly_limit=limit)
        assert decision.allowed == (usage < limit)

    @given(st.integers(max_value=-1))
    def test_quota_decision_rejects_negative_usage(self, usage):
        with pytest.raises(ValueError):
            QuotaDecision(allowed=False, current_usage=usage, monthly_limit=10)


class TestAPIModelProperties:
    """Pydantic request validation."""

    @given(st.text(alphabet=" \t\n", min_size=1, max_size=20))
    def test_blank_code_rejected(self, code):
        with pytest.raises(ValidationError):
            FormatRequest(code=code, language=Language.JSON)

    @given(st.text(alphabet=" \t", max_size=10))
    def test_blank_key_name_rejected(self, name):
        with pytest.raises(ValidationError):
            APIKeyCreateRequest(key_name=name)

    @given(st.text(alphabet=string.ascii_lowercase + string.digits, min_size=8, max_size=40))
    def test_password_without_uppercase_rejected(self, password):
        with pytest.raises(ValidationError):
            RegisterRequest(email="a@example.com", password=password)
