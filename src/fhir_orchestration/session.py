"""Orchestration sessions.

A session is one batch of payloads validated against one chosen, ordered set
of engines. Sessions are assembled with ``SessionBuilder``; once built their
payloads and engines are fixed and only the result list grows.

Usage:
    session = (
        orchestrator.session()
        .with_payloads([bundle_json])
        .with_fhir_profile_url(profile_url)
        .add_local_rule_engine()
        .add_remote_api_engine()
        .build()
    )
    orchestrator.orchestrate(session)
"""

import threading
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from fhir_orchestration.engines import ValidationEngine, ValidationEngineType
from fhir_orchestration.exceptions import ConfigurationError
from fhir_orchestration.models import Device, ValidationResult
from fhir_orchestration.registry import EngineRegistry
from fhir_orchestration.strategy import parse_validation_strategy
from fhir_orchestration.utils.logging import get_logger

logger = get_logger(__name__)


def _frozen(urls: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    return MappingProxyType(dict(urls or {}))


class Session:
    """A batch of payloads bound to an ordered set of engines."""

    def __init__(
        self,
        payloads: Iterable[str],
        validation_engines: Iterable[ValidationEngine],
        device: Device,
        fhir_profile_url: Optional[str] = None,
        structure_definition_urls: Optional[Mapping[str, str]] = None,
        code_system_urls: Optional[Mapping[str, str]] = None,
        value_set_urls: Optional[Mapping[str, str]] = None,
    ):
        self._payloads: Tuple[str, ...] = tuple(payloads)
        self._validation_engines: Tuple[ValidationEngine, ...] = tuple(validation_engines)
        self._validation_results: List[ValidationResult] = []
        self._results_lock = threading.Lock()
        self._device = device
        self._fhir_profile_url = fhir_profile_url
        self._structure_definition_urls = _frozen(structure_definition_urls)
        self._code_system_urls = _frozen(code_system_urls)
        self._value_set_urls = _frozen(value_set_urls)

    @property
    def payloads(self) -> Tuple[str, ...]:
        return self._payloads

    @property
    def validation_engines(self) -> Tuple[ValidationEngine, ...]:
        return self._validation_engines

    @property
    def validation_results(self) -> Tuple[ValidationResult, ...]:
        """Snapshot of the results produced so far."""
        with self._results_lock:
            return tuple(self._validation_results)

    @property
    def device(self) -> Device:
        return self._device

    @property
    def fhir_profile_url(self) -> Optional[str]:
        return self._fhir_profile_url

    @property
    def structure_definition_urls(self) -> Mapping[str, str]:
        return self._structure_definition_urls

    @property
    def code_system_urls(self) -> Mapping[str, str]:
        return self._code_system_urls

    @property
    def value_set_urls(self) -> Mapping[str, str]:
        return self._value_set_urls

    def validate(self) -> None:
        """Validate every payload with every engine.

        Results are appended payload-major, engine-minor. Calling this again
        appends a second full pass.
        """
        logger.info(
            "session_validation_started",
            payloads=len(self._payloads),
            engines=len(self._validation_engines),
            profile_url=self._fhir_profile_url,
        )
        for payload in self._payloads:
            for engine in self._validation_engines:
                result = engine.validate(payload)
                with self._results_lock:
                    self._validation_results.append(result)
        logger.info(
            "session_validation_finished",
            results=len(self._validation_results),
            invalid=sum(1 for r in self._validation_results if not r.is_valid),
        )

    def __repr__(self) -> str:
        return (
            f"Session(payloads={len(self._payloads)}, engines={len(self._validation_engines)}, "
            f"results={len(self._validation_results)})"
        )


class SessionBuilder:
    """Fluent builder of ``Session`` objects.

    Named engines are resolved through the registry with the profile URL and
    reference maps set on the builder at the time they are added, so set
    those first.
    """

    def __init__(self, registry: EngineRegistry, device: Device):
        """Initialize the builder.

        Args:
            registry: Registry the named engines are obtained from
            device: Default device identity of built sessions
        """
        self._registry = registry
        self._device = device
        self._payloads: List[str] = []
        self._validation_engines: List[ValidationEngine] = []
        self._fhir_profile_url: Optional[str] = None
        self._structure_definition_urls: Dict[str, str] = {}
        self._code_system_urls: Dict[str, str] = {}
        self._value_set_urls: Dict[str, str] = {}
        self._strategy_issues: List[str] = []

    @property
    def strategy_issues(self) -> Tuple[str, ...]:
        """Diagnostics collected while applying validation strategies."""
        return tuple(self._strategy_issues)

    def on_device(self, device: Device) -> "SessionBuilder":
        self._device = device
        return self

    def with_payloads(self, payloads: Iterable[str]) -> "SessionBuilder":
        self._payloads.extend(payloads)
        return self

    def with_fhir_profile_url(self, fhir_profile_url: str) -> "SessionBuilder":
        self._fhir_profile_url = fhir_profile_url
        return self

    def with_structure_definition_urls(self, urls: Mapping[str, str]) -> "SessionBuilder":
        self._structure_definition_urls = dict(urls)
        return self

    def with_code_system_urls(self, urls: Mapping[str, str]) -> "SessionBuilder":
        self._code_system_urls = dict(urls)
        return self

    def with_value_set_urls(self, urls: Mapping[str, str]) -> "SessionBuilder":
        self._value_set_urls = dict(urls)
        return self

    def with_user_agent_validation_strategy(
        self, strategy_json: Optional[str], clear_existing: bool = False
    ) -> "SessionBuilder":
        """Select engines from a strategy descriptor.

        Never raises; problems are collected in ``strategy_issues``.

        Args:
            strategy_json: Descriptor such as ``{"engines": ["HAPI"]}``
            clear_existing: Drop engines added so far before applying it
        """
        selections, diagnostics = parse_validation_strategy(strategy_json)
        self._strategy_issues.extend(diagnostics)
        if selections is None:
            return self

        if clear_existing:
            self._validation_engines.clear()
        for engine_type in selections:
            try:
                self.add_engine(engine_type)
            except ConfigurationError as e:
                self._strategy_issues.append(
                    f"Validation strategy engine `{engine_type.value}` could not be added: {e}"
                )

        if self._strategy_issues:
            logger.warning("validation_strategy_issues", issues=list(self._strategy_issues))
        return self

    def add_validation_engine(self, validation_engine: ValidationEngine) -> "SessionBuilder":
        """Add an engine instance as is."""
        self._validation_engines.append(validation_engine)
        return self

    def add_engine(self, engine_type: Union[ValidationEngineType, str]) -> "SessionBuilder":
        """Add the registry's engine of ``engine_type`` for the current profile.

        Raises:
            ConfigurationError: If the type is unknown or no profile URL is set
        """
        if self._fhir_profile_url is None:
            raise ConfigurationError(
                f"A FHIR profile URL must be set before adding a {engine_type} engine"
            )
        self._validation_engines.append(
            self._registry.get_or_create(
                engine_type,
                self._fhir_profile_url,
                self._structure_definition_urls,
                self._code_system_urls,
                self._value_set_urls,
            )
        )
        return self

    def add_local_rule_engine(self) -> "SessionBuilder":
        return self.add_engine(ValidationEngineType.LOCAL_RULE)

    def add_remote_api_engine(self) -> "SessionBuilder":
        return self.add_engine(ValidationEngineType.REMOTE_API)

    def add_embedded_reference_engine(self) -> "SessionBuilder":
        return self.add_engine(ValidationEngineType.EMBEDDED_REFERENCE)

    def build(self) -> Session:
        return Session(
            payloads=self._payloads,
            validation_engines=self._validation_engines,
            device=self._device,
            fhir_profile_url=self._fhir_profile_url,
            structure_definition_urls=self._structure_definition_urls,
            code_system_urls=self._code_system_urls,
            value_set_urls=self._value_set_urls,
        )
