"""Orchestration engine, the top-level entry point for bundle validation.

Usage:
    orchestrator = OrchestrationEngine()

    session = (
        orchestrator.session()
        .with_payloads([payload1, payload2])
        .with_fhir_profile_url("http://example.com/fhirProfile")
        .add_local_rule_engine()
        .add_remote_api_engine()
        .add_embedded_reference_engine()
        .build()
    )
    orchestrator.orchestrate(session)

    for session in orchestrator.sessions:
        for result in session.validation_results:
            print(result.is_valid, [issue.message for issue in result.issues])
"""

import threading
from typing import List, Mapping, Optional, Tuple, Union

from fhir_orchestration.engines import ValidationEngine, ValidationEngineType
from fhir_orchestration.models import Device
from fhir_orchestration.registry import EngineRegistry
from fhir_orchestration.session import Session, SessionBuilder
from fhir_orchestration.utils.logging import get_logger

logger = get_logger(__name__)


class OrchestrationEngine:
    """Runs validation sessions and keeps their history."""

    def __init__(
        self,
        registry: Optional[EngineRegistry] = None,
        device: Optional[Device] = None,
    ):
        """Initialize the orchestrator.

        Args:
            registry: Engine cache; a new one with the built-in engines by default
            device: Identity of this host; resolved once here when omitted
        """
        self.registry = registry or EngineRegistry()
        self.device = device or Device.resolve()
        self._sessions: List[Session] = []
        self._sessions_lock = threading.Lock()

    @property
    def sessions(self) -> Tuple[Session, ...]:
        """Sessions orchestrated so far, oldest first."""
        with self._sessions_lock:
            return tuple(self._sessions)

    def session(self) -> SessionBuilder:
        """Start building a session bound to this orchestrator."""
        return SessionBuilder(self.registry, self.device)

    def get_validation_engine(
        self,
        engine_type: Union[ValidationEngineType, str],
        fhir_profile_url: Optional[str],
        structure_definition_urls: Optional[Mapping[str, str]] = None,
        code_system_urls: Optional[Mapping[str, str]] = None,
        value_set_urls: Optional[Mapping[str, str]] = None,
    ) -> ValidationEngine:
        """Return the cached engine for ``(engine_type, fhir_profile_url)``."""
        return self.registry.get_or_create(
            engine_type,
            fhir_profile_url,
            structure_definition_urls,
            code_system_urls,
            value_set_urls,
        )

    def orchestrate(self, *sessions: Session) -> None:
        """Validate sessions in order and record them.

        A session is recorded even if its validation stops on an unexpected
        error; the results produced before the error are kept and the error
        propagates to the caller.
        """
        for session in sessions:
            try:
                session.validate()
            except Exception:
                logger.exception("session_validation_aborted", session=repr(session))
                raise
            finally:
                with self._sessions_lock:
                    self._sessions.append(session)
