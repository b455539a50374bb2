"""Tests for the validation support chain building blocks."""

import pytest

from fhir_orchestration.exceptions import DataFormatError
from fhir_orchestration.support import (
    CachingValidationSupport,
    CodeValidationResult,
    DefaultProfileSupport,
    PrePopulatedSupport,
    ValidationSupport,
    ValidationSupportChain,
)
from fhir_orchestration.support.base import canonical
from fhir_orchestration.support.default_profile import base_profile_url
from tests.conftest import PROFILE_URL


class CountingSupport(ValidationSupport):
    """Support answering every code question and counting the calls."""

    def __init__(self, ok: bool):
        self.ok = ok
        self.calls = 0

    def validate_code(self, context, system, code, value_set_url=None):
        self.calls += 1
        return CodeValidationResult(ok=self.ok, message=None if self.ok else "rejected")


class TestCanonical:
    """Test canonical URL handling."""

    def test_version_suffix_is_removed(self):
        """The |version part is not part of the lookup key."""
        assert canonical(f"{PROFILE_URL}|1.2.0") == PROFILE_URL
        assert canonical(PROFILE_URL) == PROFILE_URL


class TestPrePopulatedSupport:
    """Test runtime supplied resources."""

    def test_resources_are_found_by_canonical_url(self, profile_document, code_system_document):
        """Lookups ignore version suffixes."""
        support = PrePopulatedSupport()
        support.add_structure_definition(profile_document)
        support.add_code_system(code_system_document)

        assert support.fetch_structure_definition(f"{PROFILE_URL}|2.0") is profile_document
        assert support.fetch_code_system(code_system_document["url"]) is code_system_document
        assert support.fetch_value_set(PROFILE_URL) is None
        assert len(support) == 2

    def test_wrong_resource_type(self, value_set_document):
        """Resources are checked against the kind they are added as."""
        support = PrePopulatedSupport()

        with pytest.raises(DataFormatError, match="Expected a CodeSystem"):
            support.add_code_system(value_set_document)

    def test_missing_url(self):
        """Resources without a canonical URL cannot be registered."""
        support = PrePopulatedSupport()

        with pytest.raises(DataFormatError, match="no canonical url"):
            support.add_value_set({"resourceType": "ValueSet", "status": "active"})


class TestValidationSupportChain:
    """Test first-answer-wins delegation."""

    def test_first_answer_wins(self):
        """Later supports are not asked once one has answered."""
        first = CountingSupport(ok=False)
        second = CountingSupport(ok=True)
        chain = ValidationSupportChain(PrePopulatedSupport(), first)
        chain.add_validation_support(second)

        result = chain.validate_code(chain, "http://example.org/cs", "x")

        assert result.ok is False
        assert first.calls == 1
        assert second.calls == 0
        assert len(chain.supports) == 3

    def test_lookup_falls_through(self, profile_document):
        """Resources are found in whichever support holds them."""
        pre_populated = PrePopulatedSupport()
        pre_populated.add_structure_definition(profile_document)
        chain = ValidationSupportChain(DefaultProfileSupport(), pre_populated)

        assert chain.fetch_structure_definition(PROFILE_URL) is profile_document
        assert chain.fetch_structure_definition(base_profile_url("Patient"))["type"] == "Patient"
        assert chain.fetch_structure_definition("http://example.org/unknown") is None

    def test_empty_chain(self):
        """A chain without supports knows nothing."""
        chain = ValidationSupportChain()

        assert chain.fetch_code_system("http://example.org/cs") is None
        assert chain.is_code_system_supported(chain, "http://example.org/cs") is False
        assert chain.validate_code(chain, "http://example.org/cs", "x") is None


class TestCachingValidationSupport:
    """Test memoization."""

    def test_answers_are_memoized(self):
        """Repeated questions reach the wrapped support once."""
        wrapped = CountingSupport(ok=True)
        caching = CachingValidationSupport(wrapped)

        caching.validate_code(caching, "http://example.org/cs", "x")
        caching.validate_code(caching, "http://example.org/cs", "x")
        caching.validate_code(caching, "http://example.org/cs", "y")

        assert wrapped.calls == 2
        assert caching.cache_size == 2

    def test_missing_answers_are_memoized(self):
        """None answers are cached too."""
        caching = CachingValidationSupport(ValidationSupportChain())

        assert caching.fetch_value_set("http://example.org/vs") is None
        assert caching.fetch_value_set("http://example.org/vs") is None
        assert caching.cache_size == 1


class TestDefaultProfileSupport:
    """Test the built-in core definitions."""

    def test_core_value_set_includes_code_system(self):
        """Core value sets compose their whole code system."""
        support = DefaultProfileSupport()

        value_set = support.fetch_value_set("http://hl7.org/fhir/ValueSet/administrative-gender")

        assert value_set["compose"]["include"] == [
            {"system": "http://hl7.org/fhir/administrative-gender"}
        ]

    def test_base_profile_carries_required_binding(self):
        """Base definitions bind coded elements with required strength."""
        support = DefaultProfileSupport()

        bundle = support.fetch_structure_definition(base_profile_url("Bundle"))
        elements = {e["path"]: e for e in bundle["snapshot"]["element"]}

        assert elements["Bundle.type"]["binding"] == {
            "strength": "required",
            "valueSet": "http://hl7.org/fhir/ValueSet/bundle-type",
        }

    def test_unknown_resource_type(self):
        """Resource types without core rules have no definition."""
        support = DefaultProfileSupport()

        assert support.fetch_structure_definition(base_profile_url("Basic")) is None
