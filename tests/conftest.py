"""Shared fixtures for the FHIR orchestration test suite.

No test reaches the network: HTTP traffic goes through ``httpx.MockTransport``
and engines that would call out are replaced by in-process stand-ins.
"""

import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from fhir_orchestration.engines import (
    EmbeddedReferenceValidationEngine,
    ValidationEngine,
    ValidationEngineType,
)
from fhir_orchestration.models import Device, ValidationResult, utcnow
from fhir_orchestration.registry import EngineRegistry

PROFILE_URL = "http://shinny.org/StructureDefinition/SHINNYBundleProfile"
CODE_SYSTEM_URL = "http://shinny.org/CodeSystem/lab-codes"
VALUE_SET_URL = "http://shinny.org/ValueSet/lab-codes"


class RecordingEngine(ValidationEngine):
    """Engine recording every payload it is asked to validate."""

    engine_type = ValidationEngineType.EMBEDDED_REFERENCE

    def __init__(
        self,
        name: str,
        journal: List[Tuple[str, str]],
        profile_url: Optional[str] = PROFILE_URL,
        fail_on: Optional[str] = None,
    ):
        super().__init__(profile_url, f"Recording engine {name}")
        self.name = name
        self.journal = journal
        self.fail_on = fail_on

    def validate(self, payload: str) -> ValidationResult:
        initiated_at = utcnow()
        if payload == self.fail_on:
            raise RuntimeError(f"engine {self.name} cannot handle {payload}")
        self.journal.append((payload, self.name))
        return self._result(initiated_at, True)


@pytest.fixture
def device():
    """Fixed device identity, avoids host name resolution."""
    return Device(device_id="127.0.0.1", device_name="test-host")


@pytest.fixture
def journal():
    """Shared (payload, engine name) log of recording engines."""
    return []


@pytest.fixture
def recording_engine(journal):
    """Factory of recording engines writing to the shared journal."""

    def _create(name: str, fail_on: Optional[str] = None) -> RecordingEngine:
        return RecordingEngine(name, journal, fail_on=fail_on)

    return _create


@pytest.fixture
def offline_registry():
    """Registry whose engines never touch the network."""

    def embedded(profile_url, *_):
        return EmbeddedReferenceValidationEngine(profile_url)

    return EngineRegistry(
        {engine_type: embedded for engine_type in ValidationEngineType}
    )


@pytest.fixture
def profile_document() -> Dict[str, Any]:
    """Bundle profile requiring an identifier and at least one entry."""
    return {
        "resourceType": "StructureDefinition",
        "url": PROFILE_URL,
        "name": "SHINNYBundleProfile",
        "status": "active",
        "kind": "resource",
        "abstract": False,
        "type": "Bundle",
        "baseDefinition": "http://hl7.org/fhir/StructureDefinition/Bundle",
        "derivation": "constraint",
        "differential": {
            "element": [
                {"id": "Bundle", "path": "Bundle"},
                {"id": "Bundle.identifier", "path": "Bundle.identifier", "min": 1},
                {"id": "Bundle.entry", "path": "Bundle.entry", "min": 1},
            ]
        },
    }


@pytest.fixture
def code_system_document() -> Dict[str, Any]:
    """Complete CodeSystem with two lab codes."""
    return {
        "resourceType": "CodeSystem",
        "url": CODE_SYSTEM_URL,
        "status": "active",
        "content": "complete",
        "concept": [
            {"code": "glucose", "display": "Glucose"},
            {"code": "hba1c", "display": "Hemoglobin A1c"},
        ],
    }


@pytest.fixture
def value_set_document() -> Dict[str, Any]:
    """ValueSet including the whole lab CodeSystem."""
    return {
        "resourceType": "ValueSet",
        "url": VALUE_SET_URL,
        "status": "active",
        "compose": {"include": [{"system": CODE_SYSTEM_URL}]},
    }


@pytest.fixture
def valid_bundle() -> Dict[str, Any]:
    """Collection bundle conforming to the test profile."""
    return {
        "resourceType": "Bundle",
        "identifier": {"system": "urn:ietf:rfc:3986", "value": "urn:uuid:bundle-1"},
        "type": "collection",
        "entry": [
            {
                "fullUrl": "urn:uuid:patient-1",
                "resource": {"resourceType": "Patient", "id": "patient-1", "gender": "female"},
            }
        ],
    }


@pytest.fixture
def document_transport():
    """Build a mock transport serving documents by URL.

    Unknown URLs answer 404. The returned transport exposes the list of
    requested URLs as ``requests``.
    """

    def _create(documents: Dict[str, Any]) -> httpx.MockTransport:
        requested: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            requested.append(url)
            if url not in documents:
                return httpx.Response(404, text="Not Found")
            document = documents[url]
            text = document if isinstance(document, str) else json.dumps(document)
            return httpx.Response(200, text=text)

        transport = httpx.MockTransport(handler)
        transport.requests = requested  # type: ignore[attr-defined]
        return transport

    return _create


@pytest.fixture
def failing_transport() -> Callable[[], httpx.MockTransport]:
    """Build a mock transport whose every request fails to connect."""

    def _create() -> httpx.MockTransport:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        return httpx.MockTransport(handler)

    return _create
