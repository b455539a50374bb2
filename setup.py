#!/usr/bin/env python
"""Setup configuration for FHIR Orchestration."""

from setuptools import find_packages, setup

setup(
    name="fhir-orchestration",
    version="0.1.0",
    description="Orchestrates FHIR bundle validation across pluggable engines",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.5.0",
        "pydantic-settings>=2.0.0",
        "httpx>=0.25.0",
        "fhirclient>=4.1.0",
        "structlog>=23.2.0",
        "click>=8.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "fhir-orchestrate=fhir_orchestration.cli:cli",
        ],
    },
)
