"""Terminology supports.

``CommonCodeSystemsTerminologySupport`` checks the grammar based code systems
(languages, mime types, currencies, units, countries) that cannot be
enumerated. ``InMemoryTerminologySupport`` checks codes against CodeSystem
and ValueSet resources found anywhere in the chain.
"""

import re
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, Optional, Set, Tuple

from fhir_orchestration.support.base import (
    CodeValidationResult,
    ValidationSupport,
    canonical,
)

# Nested ValueSet imports deeper than this are treated as unresolvable
MAX_VALUE_SET_DEPTH = 8


class CommonCodeSystem(str, Enum):
    """Grammar based code systems."""

    LANGUAGES = "urn:ietf:bcp:47"
    MIME_TYPES = "urn:ietf:bcp:13"
    CURRENCIES = "urn:iso:std:iso:4217"
    UCUM = "http://unitsofmeasure.org"
    COUNTRIES = "urn:iso:std:iso:3166"


COMMON_CODE_PATTERNS: Dict[str, "re.Pattern[str]"] = {
    CommonCodeSystem.LANGUAGES.value: re.compile(r"^[a-zA-Z]{2,3}(-[a-zA-Z0-9]{1,8})*$"),
    CommonCodeSystem.MIME_TYPES.value: re.compile(r"^[\w.+-]+/[\w.+-]+(\s*;.*)?$"),
    CommonCodeSystem.CURRENCIES.value: re.compile(r"^[A-Z]{3}$"),
    CommonCodeSystem.UCUM.value: re.compile(r"^\S+$"),
    CommonCodeSystem.COUNTRIES.value: re.compile(r"^([A-Z]{2}|[A-Z]{3}|\d{3})$"),
}

COMMON_VALUE_SETS: Dict[str, str] = {
    "http://hl7.org/fhir/ValueSet/languages": CommonCodeSystem.LANGUAGES.value,
    "http://hl7.org/fhir/ValueSet/all-languages": CommonCodeSystem.LANGUAGES.value,
    "http://hl7.org/fhir/ValueSet/mimetypes": CommonCodeSystem.MIME_TYPES.value,
    "http://hl7.org/fhir/ValueSet/currencies": CommonCodeSystem.CURRENCIES.value,
    "http://hl7.org/fhir/ValueSet/ucum-units": CommonCodeSystem.UCUM.value,
    "http://hl7.org/fhir/ValueSet/iso3166-1-2": CommonCodeSystem.COUNTRIES.value,
    "http://hl7.org/fhir/ValueSet/iso3166-1-3": CommonCodeSystem.COUNTRIES.value,
}


class CommonCodeSystemsTerminologySupport(ValidationSupport):
    """Validates codes from the grammar based code systems."""

    name = "common-code-systems-terminology"

    def is_code_system_supported(self, context: ValidationSupport, system: str) -> bool:
        return system in COMMON_CODE_PATTERNS

    def validate_code(
        self,
        context: ValidationSupport,
        system: Optional[str],
        code: str,
        value_set_url: Optional[str] = None,
    ) -> Optional[CodeValidationResult]:
        if value_set_url is not None:
            expected_system = COMMON_VALUE_SETS.get(canonical(value_set_url))
            if expected_system is None:
                return None
            if system is not None and system != expected_system:
                return CodeValidationResult(
                    ok=False,
                    message=(
                        f"The code system '{system}' is not valid in the value set "
                        f"'{value_set_url}'"
                    ),
                )
            system = expected_system
        elif system not in COMMON_CODE_PATTERNS:
            return None

        if COMMON_CODE_PATTERNS[system].match(code):
            return CodeValidationResult(ok=True, display=code)
        return CodeValidationResult(ok=False, message=f"Unknown code '{system}#{code}'")


def _iter_concepts(concepts: Iterable[Any]) -> Iterator[Dict[str, Any]]:
    """Walk a (possibly hierarchical) concept list."""
    for concept in concepts or ():
        if not isinstance(concept, dict):
            continue
        yield concept
        yield from _iter_concepts(concept.get("concept", ()))


def _iter_contains(contains: Iterable[Any]) -> Iterator[Dict[str, Any]]:
    for item in contains or ():
        if not isinstance(item, dict):
            continue
        yield item
        yield from _iter_contains(item.get("contains", ()))


class InMemoryTerminologySupport(ValidationSupport):
    """Evaluates CodeSystem and ValueSet content in memory.

    Only enumerable content is supported: explicit concept lists, whole code
    system includes whose CodeSystem is complete, ValueSet imports and
    expansions. Filters make a value set undecidable and the support stays
    silent for it.
    """

    name = "in-memory-terminology"

    def is_code_system_supported(self, context: ValidationSupport, system: str) -> bool:
        code_system = context.fetch_code_system(system)
        return code_system is not None and code_system.get("content", "complete") == "complete"

    def _code_system_codes(
        self, context: ValidationSupport, system: str
    ) -> Optional[Dict[str, Optional[str]]]:
        code_system = context.fetch_code_system(system)
        if code_system is None or code_system.get("content", "complete") != "complete":
            return None
        return {
            concept["code"]: concept.get("display")
            for concept in _iter_concepts(code_system.get("concept", ()))
            if isinstance(concept.get("code"), str)
        }

    def _value_set_members(
        self, context: ValidationSupport, url: str, depth: int = 0
    ) -> Optional[Set[Tuple[Optional[str], str]]]:
        """Enumerate ``(system, code)`` pairs of a value set.

        Returns None when the value set is unknown or cannot be enumerated.
        """
        if depth > MAX_VALUE_SET_DEPTH:
            return None
        value_set = context.fetch_value_set(url)
        if value_set is None:
            return None

        expansion = value_set.get("expansion")
        if isinstance(expansion, dict) and expansion.get("contains"):
            return {
                (item.get("system"), item["code"])
                for item in _iter_contains(expansion["contains"])
                if isinstance(item.get("code"), str)
            }

        compose = value_set.get("compose")
        if not isinstance(compose, dict):
            return None

        members: Set[Tuple[Optional[str], str]] = set()
        for include in compose.get("include", ()):
            included = self._include_members(context, include, depth)
            if included is None:
                return None
            members |= included
        for exclude in compose.get("exclude", ()):
            excluded = self._include_members(context, exclude, depth)
            if excluded is None:
                return None
            members -= excluded
        return members

    def _include_members(
        self, context: ValidationSupport, include: Any, depth: int
    ) -> Optional[Set[Tuple[Optional[str], str]]]:
        if not isinstance(include, dict) or include.get("filter"):
            return None
        system = include.get("system")
        members: Optional[Set[Tuple[Optional[str], str]]] = None

        if include.get("concept"):
            members = {
                (system, concept["code"])
                for concept in include["concept"]
                if isinstance(concept, dict) and isinstance(concept.get("code"), str)
            }
        elif isinstance(system, str):
            codes = self._code_system_codes(context, system)
            if codes is None:
                return None
            members = {(system, code) for code in codes}

        for imported in include.get("valueSet", ()):
            imported_members = self._value_set_members(context, imported, depth + 1)
            if imported_members is None:
                return None
            members = imported_members if members is None else members & imported_members

        return members

    def validate_code(
        self,
        context: ValidationSupport,
        system: Optional[str],
        code: str,
        value_set_url: Optional[str] = None,
    ) -> Optional[CodeValidationResult]:
        if value_set_url is not None:
            members = self._value_set_members(context, value_set_url)
            if members is None:
                return None
            if system is None:
                found = any(member_code == code for _, member_code in members)
            else:
                found = (system, code) in members
            if found:
                return CodeValidationResult(ok=True)
            return CodeValidationResult(
                ok=False,
                message=(
                    f"The value provided ('{code}') is not in the value set "
                    f"'{value_set_url}'"
                ),
            )

        if system is None:
            return None
        codes = self._code_system_codes(context, system)
        if codes is None:
            return None
        if code in codes:
            return CodeValidationResult(ok=True, display=codes[code])
        return CodeValidationResult(ok=False, message=f"Unknown code '{system}#{code}'")
