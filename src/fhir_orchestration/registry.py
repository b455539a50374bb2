"""Engine registry.

Validation engines can be expensive to build, so the registry memoizes them
by ``(engine type, profile URL)``. Reference resource maps are not part of
the key: the first engine built for a key is returned to every later caller,
whatever maps they pass.
"""

import threading
from typing import Callable, Dict, Mapping, NamedTuple, Optional, Union

from fhir_orchestration.config import Settings, get_settings
from fhir_orchestration.engines import (
    EmbeddedReferenceValidationEngine,
    LocalRuleValidationEngine,
    RemoteApiValidationEngine,
    ValidationEngine,
    ValidationEngineType,
)
from fhir_orchestration.exceptions import ConfigurationError
from fhir_orchestration.fetcher import ResourceFetcher
from fhir_orchestration.utils.logging import get_logger

logger = get_logger(__name__)

UrlMap = Optional[Mapping[str, str]]
EngineFactory = Callable[[Optional[str], UrlMap, UrlMap, UrlMap], ValidationEngine]


class EngineKey(NamedTuple):
    """Cache key of a validation engine."""

    engine_type: ValidationEngineType
    profile_url: Optional[str]


def default_engine_factories(
    settings: Optional[Settings] = None,
) -> Dict[ValidationEngineType, EngineFactory]:
    """Factories building the built-in engines from settings."""
    settings = settings or get_settings()

    def local_rule(
        profile_url: Optional[str],
        structure_definition_urls: UrlMap,
        code_system_urls: UrlMap,
        value_set_urls: UrlMap,
    ) -> ValidationEngine:
        return LocalRuleValidationEngine(
            profile_url,
            structure_definition_urls=structure_definition_urls,
            code_system_urls=code_system_urls,
            value_set_urls=value_set_urls,
            fetcher=ResourceFetcher(timeout=settings.resource_fetch_timeout),
            fhir_version=settings.fhir_version,
        )

    def remote_api(profile_url: Optional[str], *_: UrlMap) -> ValidationEngine:
        return RemoteApiValidationEngine(
            profile_url,
            endpoint=settings.remote_validator_url,
            timeout=settings.remote_validator_timeout,
            fhir_version=settings.fhir_version,
            locale=settings.validation_locale,
        )

    def embedded(profile_url: Optional[str], *_: UrlMap) -> ValidationEngine:
        return EmbeddedReferenceValidationEngine(profile_url)

    return {
        ValidationEngineType.LOCAL_RULE: local_rule,
        ValidationEngineType.REMOTE_API: remote_api,
        ValidationEngineType.EMBEDDED_REFERENCE: embedded,
    }


def coerce_engine_type(engine_type: Union[ValidationEngineType, str]) -> ValidationEngineType:
    """Resolve an engine type or its strategy identifier.

    Raises:
        ConfigurationError: If the value names no known engine
    """
    if isinstance(engine_type, ValidationEngineType):
        return engine_type
    try:
        return ValidationEngineType(engine_type)
    except ValueError:
        raise ConfigurationError(f"Unknown validation engine type: {engine_type}") from None


class EngineRegistry:
    """Thread-safe create-or-reuse cache of validation engines.

    Construction is single-flight per key: when several threads ask for the
    same missing engine, one builds it while the others wait and then receive
    that same instance. Engines for different keys are built concurrently.
    """

    def __init__(self, factories: Optional[Mapping[ValidationEngineType, EngineFactory]] = None):
        """Initialize the registry.

        Args:
            factories: Engine factory per type; defaults to the built-in engines
        """
        self._factories = dict(factories) if factories is not None else default_engine_factories()
        self._engines: Dict[EngineKey, ValidationEngine] = {}
        self._key_locks: Dict[EngineKey, threading.Lock] = {}
        self._lock = threading.Lock()

    def get_or_create(
        self,
        engine_type: Union[ValidationEngineType, str],
        profile_url: Optional[str],
        structure_definition_urls: UrlMap = None,
        code_system_urls: UrlMap = None,
        value_set_urls: UrlMap = None,
    ) -> ValidationEngine:
        """Return the engine for ``(engine_type, profile_url)``, building it once.

        Raises:
            ConfigurationError: If the engine type is unknown or has no factory
        """
        key = EngineKey(coerce_engine_type(engine_type), profile_url)
        factory = self._factories.get(key.engine_type)
        if factory is None:
            raise ConfigurationError(f"No factory registered for engine type {key.engine_type.value}")

        with self._lock:
            engine = self._engines.get(key)
            if engine is not None:
                return engine
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            with self._lock:
                engine = self._engines.get(key)
            if engine is not None:
                return engine

            engine = factory(profile_url, structure_definition_urls, code_system_urls, value_set_urls)
            with self._lock:
                self._engines[key] = engine
                self._key_locks.pop(key, None)
            logger.info(
                "validation_engine_created",
                engine_type=key.engine_type.value,
                profile_url=profile_url,
                identity=engine.observability.identity,
            )
            return engine

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._engines

    def __len__(self) -> int:
        with self._lock:
            return len(self._engines)

    def clear(self) -> None:
        """Forget every cached engine."""
        with self._lock:
            self._engines.clear()
