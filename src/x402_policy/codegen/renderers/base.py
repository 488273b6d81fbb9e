"""Template filling shared by all renderers.

Templates are plain source text with %NAME% placeholders. Values are
inserted verbatim, so every value must already be a valid literal for the
target language. Header values end up inside comments and docstrings and are
reduced to a character set that cannot close or escape either.
"""

from __future__ import annotations

__all__ = [
    "fill",
    "header_text",
    "header_values",
]

import re

from x402_policy import __version__
from x402_policy.codegen.ir import MiddlewareIR
from x402_policy.exceptions import CodegenInvariantError

_PLACEHOLDER_RE = re.compile(r"%([A-Z_]+)%")
_HEADER_UNSAFE_RE = re.compile(r"[^0-9A-Za-z._\-/<> :@+,()]")


def fill(template: str, **values: str) -> str:
    """Replace every %NAME% placeholder in ``template``.

    Raises:
        CodegenInvariantError: If a placeholder has no value.
    """

    def _substitute(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name not in values:
            raise CodegenInvariantError(f"Template placeholder %{name}% has no value")
        return values[name]

    return _PLACEHOLDER_RE.sub(_substitute, template)


def header_text(value: str) -> str:
    """Make ``value`` safe inside a JS comment or a Python docstring."""
    return _HEADER_UNSAFE_RE.sub("_", value)


def header_values(ir: MiddlewareIR) -> dict[str, str]:
    """Values for the generated file header. No timestamps, so output is reproducible."""
    return {
        "TOOL_VERSION": header_text(__version__),
        "SOURCE": header_text(ir.source_name or "<inline policy>"),
        "VERSION": header_text(ir.version),
        "CHECKSUM": header_text(ir.checksum),
        "RULE_COUNT": str(len(ir.rules)),
    }
