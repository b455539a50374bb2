"""Exceptions Module.

This module defines the exceptions raised by the orchestration core. Problems
found while validating a payload are never raised to callers; they are
reported as issues on the returned validation result.
"""


class OrchestrationError(Exception):
    """Base exception for all FHIR Orchestration errors."""


class ConfigurationError(OrchestrationError):
    """Raised when an engine is requested that cannot be configured."""


class DataFormatError(OrchestrationError):
    """Raised when content is not the FHIR resource it is expected to be."""
