"""Middleware code generation.

generate_middleware() re-validates the policy, lowers it to the IR and hands
the IR to the renderer registered for the target framework. The same
ValidatedPolicy always produces byte-identical output.
"""

from __future__ import annotations

__all__ = [
    "generate_middleware",
    "supported_frameworks",
]

import dataclasses
from pathlib import PurePath

from x402_policy.codegen.ir import build_ir
from x402_policy.codegen.renderers import RENDERERS
from x402_policy.constants import SUPPORTED_FRAMEWORKS
from x402_policy.exceptions import (
    CodegenInvariantError,
    PolicyContractError,
    PolicyValidationError,
    UnsupportedFrameworkError,
)
from x402_policy.pdp.validator import ValidatedPolicy, validate_policy


def supported_frameworks() -> tuple[str, ...]:
    """Names accepted by generate_middleware()."""
    return SUPPORTED_FRAMEWORKS


def generate_middleware(
    policy: ValidatedPolicy,
    framework: str,
    source_name: str | None = None,
) -> str:
    """Generate middleware source for ``framework``.

    Args:
        policy: Policy returned by validate_policy().
        framework: Target name (case-insensitive), see supported_frameworks().
        source_name: Policy file name shown in the generated header.

    Returns:
        Source text of the middleware.

    Raises:
        UnsupportedFrameworkError: If ``framework`` is unknown.
        PolicyContractError: If ``policy`` is not a ValidatedPolicy.
        CodegenInvariantError: If the validated policy fails re-validation.
    """
    target = framework.strip().lower()
    renderer = RENDERERS.get(target)
    if renderer is None:
        raise UnsupportedFrameworkError(framework, SUPPORTED_FRAMEWORKS)

    if not isinstance(policy, ValidatedPolicy):
        raise PolicyContractError(
            f"generate_middleware() requires a ValidatedPolicy, got {type(policy).__name__}"
        )

    # Re-validate: generated code is deployed elsewhere and cannot be recalled
    try:
        revalidated = validate_policy(policy.policy)
    except PolicyValidationError as e:
        raise CodegenInvariantError(f"Validated policy failed re-validation: {e}") from e
    if revalidated.checksum != policy.checksum:
        raise CodegenInvariantError("Validated policy changed after validation (checksum mismatch)")

    ir = build_ir(policy)
    if source_name:
        ir = dataclasses.replace(ir, source_name=PurePath(source_name).name)
    return renderer(ir)
