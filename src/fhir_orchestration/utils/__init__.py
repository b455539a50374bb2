"""Utility helpers for FHIR Orchestration."""
