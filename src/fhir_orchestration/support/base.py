"""Validation support chain.

A validation support answers the questions the instance validator asks while
checking a resource: "which StructureDefinition has this canonical URL?",
"is this code valid in that value set?". Supports are stacked in a chain and
the first one able to answer wins.
"""

from abc import ABC
from dataclasses import dataclass
from typing import Any, Dict, Hashable, List, Optional, Tuple

Resource = Dict[str, Any]


@dataclass(frozen=True)
class CodeValidationResult:
    """Answer to a code validation question."""

    ok: bool
    message: Optional[str] = None
    display: Optional[str] = None


def canonical(url: str) -> str:
    """Strip the ``|version`` suffix from a canonical URL."""
    return url.split("|", 1)[0]


class ValidationSupport(ABC):
    """Base class for all validation supports.

    Every lookup returns None when the support cannot answer, so the chain
    can move on to the next support.
    """

    name = "validation-support"

    def fetch_structure_definition(self, url: str) -> Optional[Resource]:
        """Return the StructureDefinition with the given canonical URL."""
        return None

    def fetch_code_system(self, url: str) -> Optional[Resource]:
        """Return the CodeSystem with the given canonical URL."""
        return None

    def fetch_value_set(self, url: str) -> Optional[Resource]:
        """Return the ValueSet with the given canonical URL."""
        return None

    def is_code_system_supported(self, context: "ValidationSupport", system: str) -> bool:
        """Whether this support can validate codes of ``system``."""
        return False

    def validate_code(
        self,
        context: "ValidationSupport",
        system: Optional[str],
        code: str,
        value_set_url: Optional[str] = None,
    ) -> Optional[CodeValidationResult]:
        """Validate a code, optionally against a value set.

        Args:
            context: Root support used for follow-up lookups
            system: Code system URL, if known
            code: The code to validate
            value_set_url: Canonical URL of the value set the code must be in

        Returns:
            The validation answer, or None if this support cannot decide
        """
        return None


class ValidationSupportChain(ValidationSupport):
    """Delegates every lookup to its supports in order."""

    name = "validation-support-chain"

    def __init__(self, *supports: ValidationSupport):
        """Initialize the chain with an optional list of supports."""
        self._supports: List[ValidationSupport] = list(supports)

    def add_validation_support(self, support: ValidationSupport) -> None:
        """Append a support to the end of the chain."""
        self._supports.append(support)

    @property
    def supports(self) -> Tuple[ValidationSupport, ...]:
        """Supports in lookup order."""
        return tuple(self._supports)

    def fetch_structure_definition(self, url: str) -> Optional[Resource]:
        for support in self._supports:
            found = support.fetch_structure_definition(url)
            if found is not None:
                return found
        return None

    def fetch_code_system(self, url: str) -> Optional[Resource]:
        for support in self._supports:
            found = support.fetch_code_system(url)
            if found is not None:
                return found
        return None

    def fetch_value_set(self, url: str) -> Optional[Resource]:
        for support in self._supports:
            found = support.fetch_value_set(url)
            if found is not None:
                return found
        return None

    def is_code_system_supported(self, context: ValidationSupport, system: str) -> bool:
        return any(s.is_code_system_supported(context, system) for s in self._supports)

    def validate_code(
        self,
        context: ValidationSupport,
        system: Optional[str],
        code: str,
        value_set_url: Optional[str] = None,
    ) -> Optional[CodeValidationResult]:
        for support in self._supports:
            result = support.validate_code(context, system, code, value_set_url)
            if result is not None:
                return result
        return None


class CachingValidationSupport(ValidationSupport):
    """Memoizes the answers of a wrapped support.

    The cache lives as long as the wrapper; a new chain is assembled for
    every validation so cached answers never outlive the resources they
    were computed from.
    """

    name = "caching-validation-support"

    def __init__(self, wrapped: ValidationSupport):
        """Wrap ``wrapped`` with a cache."""
        self.wrapped = wrapped
        self._cache: Dict[Hashable, Any] = {}

    def _cached(self, key: Hashable, loader: Any) -> Any:
        if key not in self._cache:
            self._cache[key] = loader()
        return self._cache[key]

    def fetch_structure_definition(self, url: str) -> Optional[Resource]:
        return self._cached(
            ("sd", url), lambda: self.wrapped.fetch_structure_definition(url)
        )

    def fetch_code_system(self, url: str) -> Optional[Resource]:
        return self._cached(("cs", url), lambda: self.wrapped.fetch_code_system(url))

    def fetch_value_set(self, url: str) -> Optional[Resource]:
        return self._cached(("vs", url), lambda: self.wrapped.fetch_value_set(url))

    def is_code_system_supported(self, context: ValidationSupport, system: str) -> bool:
        return self._cached(
            ("supported", system),
            lambda: self.wrapped.is_code_system_supported(context, system),
        )

    def validate_code(
        self,
        context: ValidationSupport,
        system: Optional[str],
        code: str,
        value_set_url: Optional[str] = None,
    ) -> Optional[CodeValidationResult]:
        return self._cached(
            ("code", system, code, value_set_url),
            lambda: self.wrapped.validate_code(context, system, code, value_set_url),
        )

    @property
    def cache_size(self) -> int:
        """Number of memoized answers."""
        return len(self._cache)
