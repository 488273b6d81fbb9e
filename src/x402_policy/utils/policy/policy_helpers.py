"""Policy loader - read policy files from disk.

This module is the only place the policy core touches the filesystem. The
parser and validator stay pure; these helpers add file reading and error
messages that point at the file.
"""

from __future__ import annotations

__all__ = [
    "load_policy_file",
    "load_validated_policy",
]

from pathlib import Path

from x402_policy.pdp.parser import parse_policy
from x402_policy.pdp.policy import PolicyConfig
from x402_policy.pdp.validator import ValidatedPolicy, validate_policy


def load_policy_file(path: Path) -> PolicyConfig:
    """Read and parse a policy file (YAML or JSON).

    Args:
        path: Path to the policy file.

    Returns:
        PolicyConfig (not yet validated).

    Raises:
        FileNotFoundError: If the file does not exist.
        PolicyParseError: If the content is not a well-formed policy.
        ValueError: If the file cannot be read or decoded as UTF-8.
    """
    if not path.exists():
        raise FileNotFoundError(f"Policy file not found at {path}")

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ValueError(f"Could not read policy file {path}: {e}") from e

    return parse_policy(text)


def load_validated_policy(path: Path) -> ValidatedPolicy:
    """Read, parse and validate a policy file.

    Raises:
        FileNotFoundError: If the file does not exist.
        PolicyParseError: If parsing fails.
        PolicyValidationError: If validation finds errors.
    """
    return validate_policy(load_policy_file(path))
