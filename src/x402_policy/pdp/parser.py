"""Policy parser - turn configuration text into a PolicyConfig.

Accepts YAML (JSON is a subset). Parsing is fail-fast: the first offending
construct raises PolicyParseError naming the rule index, the field and the
expected type. Nothing is coerced or defaulted when a value is invalid.
Bounds and cross-rule checks are left to the validator.
"""

from __future__ import annotations

__all__ = [
    "parse_policy",
    "parse_policy_data",
]

from typing import Any

import yaml
from pydantic import ValidationError

from x402_policy.constants import RULE_TYPES
from x402_policy.exceptions import PolicyParseError
from x402_policy.pdp.policy import PolicyConfig

# pydantic error type -> human description of what was expected
_EXPECTED_BY_ERROR_TYPE: dict[str, str] = {
    "int_type": "integer",
    "float_type": "number",
    "string_type": "string",
    "bool_type": "boolean",
    "list_type": "list",
    "dict_type": "mapping",
    "model_type": "mapping",
    "model_attributes_type": "mapping",
    "missing": "a value for this required field",
    "extra_forbidden": "no unknown fields",
}


def parse_policy(text: str) -> PolicyConfig:
    """Parse policy configuration text.

    Args:
        text: YAML or JSON document with ``version`` and ``policies``.

    Returns:
        PolicyConfig (not yet validated).

    Raises:
        PolicyParseError: On malformed YAML or any schema violation.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise PolicyParseError(f"Invalid YAML: {e}", expected="a YAML or JSON document") from e
    return parse_policy_data(data)


def parse_policy_data(data: Any) -> PolicyConfig:
    """Parse an already-decoded policy document (dict).

    Raises:
        PolicyParseError: On any schema violation.
    """
    if not isinstance(data, dict):
        raise PolicyParseError(
            "Policy document must be a mapping",
            expected="mapping with 'version' and 'policies'",
        )

    if "policies" not in data:
        raise PolicyParseError("Missing required field", field="policies", expected="list of rules")

    policies = data["policies"]
    if not isinstance(policies, list):
        raise PolicyParseError("Wrong value type", field="policies", expected="list of rules")

    # Tag checks first: they give clearer messages than the union error
    for idx, entry in enumerate(policies):
        if not isinstance(entry, dict):
            raise PolicyParseError(
                "Rule must be a mapping",
                rule_index=idx,
                expected="mapping with a 'type' tag",
            )
        if "type" not in entry:
            raise PolicyParseError(
                "Missing rule type tag",
                rule_index=idx,
                field="type",
                expected=f"one of: {', '.join(RULE_TYPES)}",
            )
        if entry["type"] not in RULE_TYPES:
            raise PolicyParseError(
                f"Unknown rule type {entry['type']!r}",
                rule_index=idx,
                field="type",
                expected=f"one of: {', '.join(RULE_TYPES)}",
            )

    try:
        return PolicyConfig.model_validate(data)
    except ValidationError as e:
        raise _to_parse_error(e) from e


def _to_parse_error(exc: ValidationError) -> PolicyParseError:
    """Convert the first pydantic error into a PolicyParseError."""
    error = exc.errors()[0]
    loc = tuple(error.get("loc", ()))

    rule_index: int | None = None
    field_path: tuple[Any, ...] = loc
    if len(loc) >= 2 and loc[0] == "policies" and isinstance(loc[1], int):
        rule_index = loc[1]
        # Discriminated unions insert the tag into the location: skip it
        field_path = loc[3:] if len(loc) >= 3 and loc[2] in RULE_TYPES else loc[2:]

    return PolicyParseError(
        error.get("msg", "Invalid value"),
        rule_index=rule_index,
        field=_format_loc(field_path) or None,
        expected=_expected_for(error),
    )


def _format_loc(loc: tuple[Any, ...]) -> str:
    parts: list[str] = []
    for item in loc:
        if isinstance(item, int):
            parts.append(f"[{item}]")
        else:
            parts.append(f".{item}" if parts else str(item))
    return "".join(parts)


def _expected_for(error: Any) -> str | None:
    error_type = error.get("type", "")
    if error_type == "literal_error":
        ctx = error.get("ctx") or {}
        return f"one of {ctx['expected']}" if "expected" in ctx else None
    return _EXPECTED_BY_ERROR_TYPE.get(error_type)
