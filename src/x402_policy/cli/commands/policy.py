"""Policy commands for x402-policy CLI.

Exit codes:
    0: Success
    1: Policy could not be read, parsed, or validated
    2: Unsupported framework (generate)
    3: Request was not allowed (check)
"""

import json
import sys
from pathlib import Path

import click

from x402_policy.codegen import generate_middleware, supported_frameworks
from x402_policy.config import load_config_or_default
from x402_policy.context import RequestContext
from x402_policy.exceptions import PolicyParseError, PolicyValidationError, UnsupportedFrameworkError
from x402_policy.pdp.engine import PolicyEngine
from x402_policy.pdp.pricing import resolve_price
from x402_policy.pdp.validator import Severity, ValidatedPolicy, ValidationIssue, check_policy
from x402_policy.utils.policy import load_policy_file, load_validated_policy

EXIT_INVALID = 1
EXIT_UNSUPPORTED_FRAMEWORK = 2
EXIT_NOT_ALLOWED = 3

_SYMBOLS = {Severity.ERROR: "✗", Severity.WARNING: "⚠", Severity.INFO: "ℹ"}


def _echo_issue(issue: ValidationIssue) -> None:
    err = issue.severity is Severity.ERROR
    click.echo(f"{_SYMBOLS[issue.severity]} {issue.severity.value.upper()}: {issue.message}", err=err)
    if issue.details:
        for line in issue.details.splitlines():
            click.echo(f"    {line}", err=err)
    for suggestion in issue.suggestions:
        click.echo(f"    → {suggestion}", err=err)


def _load_or_exit(path: Path) -> ValidatedPolicy:
    """Load and validate, printing diagnostics and exiting 1 on failure."""
    try:
        return load_validated_policy(path)
    except FileNotFoundError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(EXIT_INVALID)
    except PolicyParseError as e:
        click.echo(f"✗ Parse error in {path}: {e}", err=True)
        sys.exit(EXIT_INVALID)
    except PolicyValidationError as e:
        for issue in e.report.errors:
            _echo_issue(issue)
        click.echo(f"✗ {len(e.report.errors)} validation error(s) in {path}", err=True)
        sys.exit(EXIT_INVALID)
    except ValueError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(EXIT_INVALID)


@click.command("validate")
@click.argument("file", type=click.Path(dir_okay=False, path_type=Path))
def validate(file: Path) -> None:
    """Validate a policy file.

    Prints every error, warning, and suggested fix found in one pass.

    Exit codes:
        0: Policy is valid (warnings allowed)
        1: Policy is invalid, unparsable, or not found
    """
    try:
        policy_config = load_policy_file(file)
    except FileNotFoundError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(EXIT_INVALID)
    except (PolicyParseError, ValueError) as e:
        click.echo(f"✗ Parse error in {file}: {e}", err=True)
        sys.exit(EXIT_INVALID)

    report = check_policy(policy_config)
    for issue in report.issues:
        _echo_issue(issue)

    errors, warnings, _ = report.counts()
    if errors:
        click.echo(f"✗ Policy invalid: {file} ({errors} error(s), {warnings} warning(s))", err=True)
        sys.exit(EXIT_INVALID)

    rule_count = len(policy_config.policies)
    click.echo(f"✓ Policy valid: {file}")
    click.echo(f"  {rule_count} rule{'s' if rule_count != 1 else ''} defined, {warnings} warning(s)")


@click.command("generate")
@click.argument("file", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--framework",
    "-f",
    help="Target framework (default: codegen.default_framework from config)",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write to this file instead of stdout",
)
def generate(file: Path, framework: str | None, output: Path | None) -> None:
    """Generate enforcement middleware from a policy file.

    Exit codes:
        0: Middleware generated
        1: Policy is invalid, unparsable, or not found
        2: Unsupported framework
    """
    if framework is None:
        try:
            framework = load_config_or_default().codegen.default_framework
        except ValueError as e:
            click.echo(f"✗ {e}", err=True)
            sys.exit(EXIT_INVALID)

    if framework.strip().lower() not in supported_frameworks():
        click.echo(f"✗ {UnsupportedFrameworkError(framework, supported_frameworks())}", err=True)
        sys.exit(EXIT_UNSUPPORTED_FRAMEWORK)

    validated = _load_or_exit(file)
    for issue in validated.report.warnings:
        _echo_issue(issue)

    source = generate_middleware(validated, framework, source_name=file.name)

    if output is None:
        click.echo(source, nl=False)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(source, encoding="utf-8")
    click.echo(f"✓ Generated {framework.strip().lower()} middleware: {output}", err=True)
    click.echo(f"  {len(validated.rules)} rules embedded, checksum {validated.checksum}", err=True)


@click.command("check")
@click.argument("file", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--agent-id", help="Agent identifier")
@click.option("--wallet-address", help="Paying wallet address")
@click.option("--ip-address", help="Client IP address")
@click.option("--estimated-cost", type=float, help="Cost of the request (default: route price for --path, else 0)")
@click.option("--path", "request_path", help="Request path (used for route pricing when no cost is given)")
@click.option("--json", "as_json", is_flag=True, help="Print the decision as JSON")
def check(
    file: Path,
    agent_id: str | None,
    wallet_address: str | None,
    ip_address: str | None,
    estimated_cost: float | None,
    request_path: str | None,
    as_json: bool,
) -> None:
    """Evaluate one request against a policy (dry run, empty state).

    Exit codes:
        0: Request allowed
        1: Policy is invalid, unparsable, or not found
        3: Request denied, rate limited, or over a spending cap
    """
    validated = _load_or_exit(file)

    if estimated_cost is None:
        estimated_cost = resolve_price(validated.pricing, request_path) if request_path else 0.0

    try:
        request = RequestContext(
            agent_id=agent_id,
            wallet_address=wallet_address,
            ip_address=ip_address,
            estimated_cost=estimated_cost,
            path=request_path,
        )
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--estimated-cost") from e

    decision = PolicyEngine(validated).evaluate(request)
    result = decision.to_dict()

    if as_json:
        click.echo(json.dumps({"subject_key": request.subject_key, **result}, indent=2))
    elif decision.allowed:
        click.echo(f"✓ ALLOW ({request.subject_key})")
    else:
        rule = f" [{decision.rule_id}]" if decision.rule_id else ""
        click.echo(f"✗ {decision.kind.value.upper()}{rule}: {result['reason']}")
        if "spending" in result:
            spending = result["spending"]
            click.echo(
                f"  spent {spending['current']} of {spending['limit']} {spending['currency']}, "
                f"{spending['remaining']} remaining"
            )

    if not decision.allowed:
        sys.exit(EXIT_NOT_ALLOWED)


@click.command("frameworks")
def frameworks() -> None:
    """List supported code generation targets."""
    for name in supported_frameworks():
        click.echo(name)
