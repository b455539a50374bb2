"""User agent validation strategy descriptors.

Callers (typically through a request header) choose engines with a JSON
document such as ``{"engines": ["HAPI", "HL7-Official-API"]}``. Parsing
never raises: every problem becomes a diagnostic message and the remaining
identifiers are still honoured.
"""

import json
from typing import List, Optional, Tuple

from fhir_orchestration.engines import ValidationEngineType

STRATEGY_ENGINES_KEY = "engines"


def parse_validation_strategy(
    strategy_json: Optional[str],
) -> Tuple[Optional[List[ValidationEngineType]], List[str]]:
    """Parse a strategy descriptor.

    Args:
        strategy_json: Descriptor text; None means "no strategy"

    Returns:
        The selected engine types in descriptor order (None when the
        descriptor carries no usable ``engines`` list) and the diagnostics
    """
    if strategy_json is None:
        return None, []

    try:
        strategy = json.loads(strategy_json)
    except (ValueError, TypeError, RecursionError) as e:
        return None, [
            f"Error parsing validation strategy `{strategy_json}`: {e}"
        ]

    if not isinstance(strategy, dict):
        return None, [f"Validation strategy `{strategy_json}` is not a JSON object"]

    engines = strategy.get(STRATEGY_ENGINES_KEY)
    if not isinstance(engines, list):
        return None, [
            f"Validation strategy `{STRATEGY_ENGINES_KEY}` list not found in `{strategy_json}`"
        ]

    selections: List[ValidationEngineType] = []
    diagnostics: List[str] = []
    for item in engines:
        if not isinstance(item, str):
            diagnostics.append(f"Validation strategy engine `{item!r}` is not a string")
            continue
        try:
            selections.append(ValidationEngineType(item))
        except ValueError:
            diagnostics.append(f"Validation strategy engine `{item}` was not recognized")
    return selections, diagnostics
