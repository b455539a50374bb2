"""Instance validation of FHIR bundles.

The validator checks a parsed bundle against four layers of rules:

- structure, using the ``fhirclient`` R4 models (unknown elements, wrong
  types, missing mandatory elements);
- the core Bundle invariants (bdl-1, bdl-2, bdl-3, bdl-4, bdl-7);
- StructureDefinitions resolved through the validation support chain: the
  core base definitions, the requested profiles and every profile declared in
  ``meta.profile`` (cardinality, fixed and pattern values, bindings);
- every Coding whose code system is known to the chain.

Slicing is not evaluated: sliced element definitions are skipped.
"""

import json
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from fhirclient.models.bundle import Bundle
from fhirclient.models.fhirabstractbase import FHIRValidationError
from fhirclient.models.operationoutcome import OperationOutcome, OperationOutcomeIssue

from fhir_orchestration.models import IssueSeverity
from fhir_orchestration.support.base import Resource, ValidationSupport
from fhir_orchestration.support.default_profile import base_profile_url
from fhir_orchestration.utils.logging import get_logger

logger = get_logger(__name__)

Located = Tuple[Any, str]


@dataclass(frozen=True)
class ValidationMessage:
    """A single finding of the instance validator."""

    severity: IssueSeverity
    message: str
    location: str
    code: str = "processing"
    line: Optional[int] = None
    column: Optional[int] = None

    @property
    def is_error(self) -> bool:
        """Whether the message makes the instance invalid."""
        return self.severity in (IssueSeverity.ERROR, IssueSeverity.FATAL)


def _fhirpath(root: str, dotted: Optional[str]) -> str:
    """Turn a fhirclient error path (``entry.0.resource``) into FHIRPath."""
    location = root
    for segment in (dotted or "").split("."):
        if not segment:
            continue
        if segment.isdigit():
            location += f"[{segment}]"
        else:
            location += f".{segment}"
    return location


def _flatten_structure_errors(
    error: FHIRValidationError, prefix: str = ""
) -> Iterator[Tuple[str, str]]:
    path = prefix
    if error.path:
        path = f"{prefix}.{error.path}" if prefix else error.path
    for inner in error.errors:
        if isinstance(inner, FHIRValidationError):
            yield from _flatten_structure_errors(inner, path)
        else:
            yield path, inner.args[0] if inner.args else str(inner)


def _children(node: Any, segment: str, location: str) -> List[Located]:
    """Values of one path segment below ``node``, lists flattened."""
    if not isinstance(node, dict):
        return []
    if segment.endswith("[x]"):
        prefix = segment[:-3]
        keys = [
            key
            for key in node
            if key.startswith(prefix) and len(key) > len(prefix) and key[len(prefix)].isupper()
        ]
    else:
        keys = [segment] if segment in node else []

    found: List[Located] = []
    for key in keys:
        value = node[key]
        if isinstance(value, list):
            found.extend((item, f"{location}.{key}[{i}]") for i, item in enumerate(value))
        else:
            found.append((value, f"{location}.{key}"))
    return found


def _profile_elements(structure_definition: Resource) -> List[Resource]:
    for view in ("snapshot", "differential"):
        container = structure_definition.get(view)
        if isinstance(container, dict) and container.get("element"):
            return [e for e in container["element"] if isinstance(e, dict)]
    return []


def _matches_pattern(value: Any, pattern: Any) -> bool:
    if isinstance(pattern, dict):
        return isinstance(value, dict) and all(
            key in value and _matches_pattern(value[key], expected)
            for key, expected in pattern.items()
        )
    if isinstance(pattern, list):
        return isinstance(value, list) and all(
            any(_matches_pattern(item, expected) for item in value) for expected in pattern
        )
    return value == pattern


def _bindable_codes(value: Any) -> List[Tuple[Optional[str], str]]:
    """Extract (system, code) pairs from a code, Coding or CodeableConcept."""
    if isinstance(value, str):
        return [(None, value)]
    if not isinstance(value, dict):
        return []
    if isinstance(value.get("coding"), list):
        return [
            (coding.get("system"), coding["code"])
            for coding in value["coding"]
            if isinstance(coding, dict) and isinstance(coding.get("code"), str)
        ]
    if isinstance(value.get("code"), str):
        return [(value.get("system"), value["code"])]
    return []


def _iter_codings(node: Any, location: str) -> Iterator[Tuple[Resource, str]]:
    if isinstance(node, dict):
        if isinstance(node.get("system"), str) and isinstance(node.get("code"), str):
            yield node, location
        for key, value in node.items():
            yield from _iter_codings(value, f"{location}.{key}")
    elif isinstance(node, list):
        for i, item in enumerate(node):
            yield from _iter_codings(item, f"{location}[{i}]")


class InstanceValidator:
    """Validates bundles using a validation support chain."""

    def __init__(self, support: ValidationSupport):
        """Initialize the validator.

        Args:
            support: Root of the validation support chain
        """
        self.support = support

    def validate_bundle(
        self, bundle: Resource, profile_urls: Sequence[str] = ()
    ) -> List[ValidationMessage]:
        """Validate a bundle.

        Args:
            bundle: Parsed Bundle resource
            profile_urls: Profiles the bundle itself must conform to

        Returns:
            All findings, in rule layer order
        """
        messages: List[ValidationMessage] = []
        messages.extend(self._check_structure(bundle))
        messages.extend(self._check_bundle_invariants(bundle))

        for resource, location in self._iter_resources(bundle):
            requested = list(profile_urls) if resource is bundle else []
            for url, explicit in self._profiles_for(resource, requested):
                structure_definition = self.support.fetch_structure_definition(url)
                if structure_definition is None:
                    if explicit:
                        messages.append(
                            ValidationMessage(
                                IssueSeverity.WARNING,
                                f"Profile reference '{url}' has not been checked because it is unknown",
                                location,
                                code="not-found",
                            )
                        )
                    continue
                messages.extend(
                    self._check_profile(resource, location, structure_definition, url)
                )

        messages.extend(self._check_codings(bundle))
        logger.debug(
            "bundle_validated",
            messages=len(messages),
            errors=sum(1 for m in messages if m.is_error),
        )
        return messages

    @staticmethod
    def _iter_resources(bundle: Resource) -> Iterator[Tuple[Resource, str]]:
        yield bundle, "Bundle"
        for i, entry in enumerate(bundle.get("entry") or ()):
            if isinstance(entry, dict) and isinstance(entry.get("resource"), dict):
                yield entry["resource"], f"Bundle.entry[{i}].resource"

    @staticmethod
    def _profiles_for(resource: Resource, requested: List[str]) -> List[Tuple[str, bool]]:
        """Profiles to check, paired with whether they were asked for explicitly."""
        profiles: List[Tuple[str, bool]] = []
        resource_type = resource.get("resourceType")
        if isinstance(resource_type, str):
            profiles.append((base_profile_url(resource_type), False))
        meta = resource.get("meta")
        declared = meta.get("profile") if isinstance(meta, dict) else None
        for url in requested + [p for p in declared or () if isinstance(p, str)]:
            if all(url != seen for seen, _ in profiles):
                profiles.append((url, True))
        return profiles

    def _check_structure(self, bundle: Resource) -> List[ValidationMessage]:
        try:
            Bundle(bundle, strict=True)
        except FHIRValidationError as e:
            return [
                ValidationMessage(
                    IssueSeverity.ERROR, message, _fhirpath("Bundle", path), code="structure"
                )
                for path, message in _flatten_structure_errors(e)
            ]
        return []

    def _check_bundle_invariants(self, bundle: Resource) -> List[ValidationMessage]:
        messages: List[ValidationMessage] = []
        bundle_type = bundle.get("type")
        entries = [e for e in bundle.get("entry") or () if isinstance(e, dict)]

        def invariant(key: str, text: str, location: str) -> None:
            messages.append(
                ValidationMessage(
                    IssueSeverity.ERROR,
                    f"Constraint failed: {key}: '{text}'",
                    location,
                    code="invariant",
                )
            )

        if "total" in bundle and bundle_type not in ("searchset", "history"):
            invariant("bdl-1", "total only when a search or history", "Bundle")

        for i, entry in enumerate(entries):
            location = f"Bundle.entry[{i}]"
            if "search" in entry and bundle_type != "searchset":
                invariant("bdl-2", "entry.search only when a search", location)

            needs_request = bundle_type in ("batch", "transaction", "history")
            if needs_request != ("request" in entry):
                invariant(
                    "bdl-3",
                    "entry.request mandatory for batch/transaction/history, otherwise prohibited",
                    location,
                )

            needs_response = bundle_type in ("batch-response", "transaction-response", "history")
            if needs_response != ("response" in entry):
                invariant(
                    "bdl-4",
                    "entry.response mandatory for batch-response/transaction-response/history, "
                    "otherwise prohibited",
                    location,
                )

        if bundle_type != "history":
            seen = set()
            for i, entry in enumerate(entries):
                full_url = entry.get("fullUrl")
                if not isinstance(full_url, str):
                    continue
                resource = entry.get("resource")
                meta = resource.get("meta") if isinstance(resource, dict) else None
                version = meta.get("versionId") if isinstance(meta, dict) else None
                if (full_url, version) in seen:
                    invariant(
                        "bdl-7",
                        "FullUrl must be unique in a bundle, or else entries with the same "
                        "fullUrl must have different meta.versionId (except in history bundles)",
                        f"Bundle.entry[{i}]",
                    )
                seen.add((full_url, version))

        return messages

    def _check_profile(
        self,
        resource: Resource,
        location: str,
        structure_definition: Resource,
        url: str,
    ) -> List[ValidationMessage]:
        resource_type = resource.get("resourceType")
        profile_type = structure_definition.get("type")
        if profile_type and profile_type != resource_type:
            return [
                ValidationMessage(
                    IssueSeverity.ERROR,
                    f"Profile '{url}' applies to {profile_type} resources, not {resource_type}",
                    location,
                    code="invalid",
                )
            ]

        messages: List[ValidationMessage] = []
        for element in _profile_elements(structure_definition):
            path = element.get("path")
            if not isinstance(path, str) or "." not in path:
                continue
            if element.get("sliceName") or ":" in str(element.get("id", "")):
                continue
            root, *segments = path.split(".")
            if root != resource_type:
                continue

            parents: List[Located] = [(resource, location)]
            for segment in segments[:-1]:
                parents = [
                    child
                    for node, node_location in parents
                    for child in _children(node, segment, node_location)
                    if isinstance(child[0], dict)
                ]

            for node, node_location in parents:
                values = _children(node, segments[-1], node_location)
                messages.extend(
                    self._check_cardinality(element, path, node_location, len(values), url)
                )
                for value, value_location in values:
                    messages.extend(self._check_fixed_values(element, value, value_location, url))
                    messages.extend(self._check_binding(element, path, value, value_location))
        return messages

    @staticmethod
    def _check_cardinality(
        element: Resource, path: str, location: str, count: int, url: str
    ) -> List[ValidationMessage]:
        messages = []
        minimum = element.get("min", 0)
        maximum = element.get("max", "*")
        if isinstance(minimum, int) and count < minimum:
            messages.append(
                ValidationMessage(
                    IssueSeverity.ERROR,
                    f"{path}: minimum required = {minimum}, but only found {count} (from {url})",
                    location,
                    code="required",
                )
            )
        if isinstance(maximum, str) and maximum.isdigit() and count > int(maximum):
            messages.append(
                ValidationMessage(
                    IssueSeverity.ERROR,
                    f"{path}: max allowed = {maximum}, but found {count} (from {url})",
                    location,
                    code="structure",
                )
            )
        return messages

    @staticmethod
    def _check_fixed_values(
        element: Resource, value: Any, location: str, url: str
    ) -> List[ValidationMessage]:
        messages = []
        for key, expected in element.items():
            if key.startswith("fixed") and len(key) > len("fixed"):
                if value != expected:
                    messages.append(
                        ValidationMessage(
                            IssueSeverity.ERROR,
                            f"Value is '{json.dumps(value)}' but is fixed to "
                            f"'{json.dumps(expected)}' (from {url})",
                            location,
                            code="value",
                        )
                    )
            elif key.startswith("pattern") and len(key) > len("pattern"):
                if not _matches_pattern(value, expected):
                    messages.append(
                        ValidationMessage(
                            IssueSeverity.ERROR,
                            f"The pattern [{json.dumps(expected)}] defined in the profile "
                            f"{url} not found",
                            location,
                            code="value",
                        )
                    )
        return messages

    def _check_binding(
        self, element: Resource, path: str, value: Any, location: str
    ) -> List[ValidationMessage]:
        binding = element.get("binding")
        if not isinstance(binding, dict):
            return []
        strength = binding.get("strength")
        value_set = binding.get("valueSet")
        if strength not in ("required", "extensible") or not isinstance(value_set, str):
            return []
        codes = _bindable_codes(value)
        if not codes:
            return []

        answers = [
            self.support.validate_code(self.support, system, code, value_set)
            for system, code in codes
        ]
        if any(answer is not None and answer.ok for answer in answers):
            return []
        decided = [answer for answer in answers if answer is not None]
        if not decided:
            return [
                ValidationMessage(
                    IssueSeverity.WARNING,
                    f"The valueSet reference {value_set} on element {path} could not be resolved",
                    location,
                    code="not-found",
                )
            ]
        severity = IssueSeverity.ERROR if strength == "required" else IssueSeverity.WARNING
        return [
            ValidationMessage(
                severity,
                decided[0].message or f"Code is not in the value set {value_set}",
                location,
                code="code-invalid",
            )
        ]

    def _check_codings(self, bundle: Resource) -> List[ValidationMessage]:
        messages = []
        for coding, location in _iter_codings(bundle, "Bundle"):
            system = coding["system"]
            if not self.support.is_code_system_supported(self.support, system):
                continue
            answer = self.support.validate_code(self.support, system, coding["code"])
            if answer is not None and not answer.ok:
                messages.append(
                    ValidationMessage(
                        IssueSeverity.ERROR,
                        answer.message or f"Unknown code '{system}#{coding['code']}'",
                        location,
                        code="code-invalid",
                    )
                )
        return messages


def to_operation_outcome(messages: Sequence[ValidationMessage]) -> str:
    """Serialize findings as a FHIR OperationOutcome JSON document."""
    issues = []
    for message in messages:
        issue = OperationOutcomeIssue()
        issue.severity = message.severity.value.lower()
        issue.code = message.code
        issue.diagnostics = message.message
        issue.expression = [message.location]
        issues.append(issue)

    if not issues:
        issue = OperationOutcomeIssue()
        issue.severity = "information"
        issue.code = "informational"
        issue.diagnostics = "No issues detected during validation"
        issues.append(issue)

    outcome = OperationOutcome()
    outcome.issue = issues
    return json.dumps(outcome.as_json())
