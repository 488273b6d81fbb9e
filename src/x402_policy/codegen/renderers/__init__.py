"""Renderers: one module per target framework, each exposing render(ir)."""

from typing import Callable

from x402_policy.codegen.ir import MiddlewareIR
from x402_policy.codegen.renderers import express, fastapi, fastify

RENDERERS: dict[str, Callable[[MiddlewareIR], str]] = {
    "express": express.render,
    "fastify": fastify.render,
    "fastapi": fastapi.render,
}

__all__ = [
    "RENDERERS",
]
