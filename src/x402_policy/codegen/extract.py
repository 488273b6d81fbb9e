"""Read the embedded rule set back out of generated middleware.

Works on the output of every renderer: JavaScript carries
``const POLICY_RULES = [...];`` and Python carries
``POLICY_RULES = json.loads('[...]')``. Only literal parsing is used; the
generated code is never executed.
"""

from __future__ import annotations

__all__ = ["extract_embedded_rules"]

import ast
import json
import re
from typing import Any

from x402_policy.constants import EMBEDDED_RULES_CONSTANT
from x402_policy.exceptions import PolicyParseError
from x402_policy.pdp.parser import parse_policy_data

_JS_RE = re.compile(rf"^\s*const\s+{EMBEDDED_RULES_CONSTANT}\s*=\s*(\[.*\]);\s*$", re.MULTILINE)
_PY_RE = re.compile(rf"^{EMBEDDED_RULES_CONSTANT}\s*=\s*json\.loads\((.+)\)\s*$", re.MULTILINE)


def _embedded_json(source: str) -> str:
    match = _JS_RE.search(source)
    if match:
        return match.group(1)

    match = _PY_RE.search(source)
    if match:
        try:
            literal = ast.literal_eval(match.group(1))
        except (ValueError, SyntaxError) as e:
            raise PolicyParseError(
                f"{EMBEDDED_RULES_CONSTANT} is not a string literal: {e}", expected="json.loads('<json>')"
            ) from e
        if not isinstance(literal, str):
            raise PolicyParseError(f"{EMBEDDED_RULES_CONSTANT} is not a string literal", expected="a JSON string")
        return literal

    raise PolicyParseError(
        f"No {EMBEDDED_RULES_CONSTANT} constant found in source",
        expected="middleware produced by generate_middleware()",
    )


def extract_embedded_rules(source: str) -> list[Any]:
    """Return the rules embedded in generated middleware source.

    Args:
        source: Generated source text (any supported framework).

    Returns:
        List of rule models, in the original policy order.

    Raises:
        PolicyParseError: If the constant is missing or malformed.
    """
    try:
        data = json.loads(_embedded_json(source))
    except json.JSONDecodeError as e:
        raise PolicyParseError(f"{EMBEDDED_RULES_CONSTANT} is not valid JSON: {e}", expected="a JSON array") from e
    return list(parse_policy_data({"policies": data}).policies)
