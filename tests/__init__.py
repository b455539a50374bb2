"""FHIR Orchestration test suite.

Unit tests run fully offline: HTTP traffic is served by mock transports.
"""
