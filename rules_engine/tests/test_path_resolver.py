"""
Unit tests for JsonPathResolver.
"""

from dataclasses import dataclass

import pytest

from rules_engine.app.rules.path_resolver import JsonPathResolver
from shared.test_helpers import create_user_profile


@dataclass
class Account:
    tier: str
    limits: dict


class TestJsonPathResolver:
    """Test cases for JsonPathResolver."""

    @pytest.fixture
    def resolver(self):
        return JsonPathResolver()

    def test_top_level_property(self, resolver):
        assert resolver.resolve_value(create_user_profile(), "$.accountType") == "PREMIUM"

    def test_nested_property(self, resolver):
        assert resolver.resolve_value(create_user_profile(), "$.address.city") == "Nairobi"

    def test_sequence_index(self, resolver):
        assert resolver.resolve_value(create_user_profile(), "$.tags.1") == "newsletter"

    def test_bad_sequence_index(self, resolver):
        assert resolver.resolve_value(create_user_profile(), "$.tags.9") is None
        assert resolver.resolve_value(create_user_profile(), "$.tags.first") is None

    def test_object_attributes(self, resolver):
        account = Account(tier="gold", limits={"daily": 500})

        assert resolver.resolve_value(account, "$.tier") == "gold"
        assert resolver.resolve_value(account, "$.limits.daily") == 500

    def test_missing_segment(self, resolver):
        assert resolver.resolve_value(create_user_profile(), "$.address.zip") is None
        assert resolver.resolve_value(create_user_profile(), "$.missing.deeper") is None

    def test_empty_path_returns_fact(self, resolver):
        profile = create_user_profile()

        assert resolver.resolve_value(profile, "") is profile
        assert resolver.resolve_value(profile, None) is profile

    def test_none_fact(self, resolver):
        assert resolver.resolve_value(None, "$.anything") is None

    def test_path_without_prefix(self, resolver):
        assert resolver.resolve_value(create_user_profile(), "accountType") is None

    def test_strings_are_not_indexed(self, resolver):
        assert resolver.resolve_value({"name": "abc"}, "$.name.0") is None
