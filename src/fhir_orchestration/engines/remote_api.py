"""Remote engine backed by the HL7 official validator API."""

import json
import re
from typing import Any, List, Optional

import httpx

from fhir_orchestration.engines.base import ValidationEngine, ValidationEngineType
from fhir_orchestration.models import (
    SourceLocation,
    ValidationIssue,
    ValidationResult,
    utcnow,
)
from fhir_orchestration.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_VALIDATOR_URL = "https://validator.fhir.org/validate"
DEFAULT_TIMEOUT_SECONDS = 120.0

# Marker whose presence in the response body means the validator produced a report
VALIDITY_MARKER = "OperationOutcome"

FILE_NAME = "input.json"
FILE_TYPE = "json"

_NEWLINES = re.compile(r"\r\n|\r|\n")


def normalize_newlines(payload: str) -> str:
    """Use CRLF line endings throughout."""
    return _NEWLINES.sub("\r\n", payload)


def _int_or_none(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value)


def parse_issues(response_body: str) -> List[ValidationIssue]:
    """Extract ``outcomes[].issues[]`` from a validator response.

    Malformed content is logged and skipped; whatever was readable is
    returned.
    """
    try:
        root = json.loads(response_body)
    except json.JSONDecodeError as e:
        logger.warning("remote_response_unparseable", error=str(e))
        return []

    outcomes = root.get("outcomes") if isinstance(root, dict) else None
    if not isinstance(outcomes, list):
        return []

    issues: List[ValidationIssue] = []
    for outcome in outcomes:
        nodes = outcome.get("issues") if isinstance(outcome, dict) else None
        if not isinstance(nodes, list):
            continue
        for node in nodes:
            if not isinstance(node, dict):
                continue
            location = node.get("location")
            issues.append(
                ValidationIssue(
                    message=_text(node.get("message")),
                    location=SourceLocation(
                        line=_int_or_none(node.get("line")),
                        column=_int_or_none(node.get("col")),
                        diagnostics=location if isinstance(location, str) else None,
                    ),
                    severity=_text(node.get("level")),
                )
            )
    return issues


class RemoteApiValidationEngine(ValidationEngine):
    """Engine posting payloads to the HL7 official validator service."""

    engine_type = ValidationEngineType.REMOTE_API

    def __init__(
        self,
        profile_url: Optional[str],
        endpoint: str = DEFAULT_VALIDATOR_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        fhir_version: str = "4.0.1",
        locale: str = "en",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the engine.

        Args:
            profile_url: Implementation guide / profile passed to the validator
            endpoint: URL of the validator's validate operation
            timeout: Connect and request timeout in seconds
            fhir_version: FHIR version sent as ``sv``
            locale: Locale of the returned messages
            transport: Optional transport, used to stub the network in tests
        """
        super().__init__(profile_url, f"HL7 Official API ({endpoint})")
        self.endpoint = endpoint
        self.timeout = timeout
        self.fhir_version = fhir_version
        self.locale = locale
        self._transport = transport

    def build_request_body(self, payload: str) -> str:
        """Render the JSON request for one payload."""
        body = {
            "cliContext": {
                "sv": self.fhir_version,
                "ig": [self.profile_url] if self.profile_url else [],
                "locale": self.locale,
            },
            "filesToValidate": [
                {
                    "fileName": FILE_NAME,
                    "fileContent": normalize_newlines(payload),
                    "fileType": FILE_TYPE,
                }
            ],
        }
        return json.dumps(body)

    def validate(self, payload: str) -> ValidationResult:
        initiated_at = utcnow()
        try:
            with httpx.Client(
                timeout=httpx.Timeout(self.timeout, connect=self.timeout),
                transport=self._transport,
            ) as client:
                response = client.post(
                    self.endpoint,
                    content=self.build_request_body(payload),
                    headers={
                        "Content-Type": "application/json",
                        "Accept": "application/json",
                    },
                )
                response_body = response.text
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(
                "remote_validation_transport_failed",
                endpoint=self.endpoint,
                error=str(e),
                error_type=type(e).__name__,
            )
            return self._fatal_result(initiated_at, e)

        is_valid = VALIDITY_MARKER in response_body
        issues = parse_issues(response_body)
        logger.info(
            "remote_validation_complete",
            endpoint=self.endpoint,
            status_code=response.status_code,
            is_valid=is_valid,
            issues=len(issues),
        )
        return self._result(initiated_at, is_valid, issues)
