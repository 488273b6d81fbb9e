"""Code generation - standalone enforcement middleware for other frameworks.

Structure:
    ir.py             - MiddlewareIR: ordered (stage, rule) pairs
    renderers/        - One renderer per target over the IR
    generator.py      - generate_middleware(): validate, lower, render
    extract.py        - extract_embedded_rules(): read POLICY_RULES back
"""

from x402_policy.codegen.extract import extract_embedded_rules
from x402_policy.codegen.generator import generate_middleware, supported_frameworks
from x402_policy.codegen.ir import IRStep, MiddlewareIR, Stage, build_ir

__all__ = [
    "IRStep",
    "MiddlewareIR",
    "Stage",
    "build_ir",
    "extract_embedded_rules",
    "generate_middleware",
    "supported_frameworks",
]
