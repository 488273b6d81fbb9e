"""Express renderer.

Emits a CommonJS module exporting ``createPolicyMiddleware(options)``.
Usage commits on ``res.on('finish')`` when the status code is below 400.
"""

from __future__ import annotations

__all__ = ["render"]

from x402_policy.codegen.ir import MiddlewareIR
from x402_policy.codegen.renderers.base import fill, header_values
from x402_policy.codegen.renderers.javascript import render_core

_HEADER = """/**
 * x402 policy middleware for Express.
 *
 * Generated by x402-policy %TOOL_VERSION% from %SOURCE%. Do not edit.
 * Policy checksum: %CHECKSUM%
 *
 * Usage:
 *   const { createPolicyMiddleware } = require('./x402-policy');
 *   app.use(createPolicyMiddleware({ auditHook: (subjectKey, ruleId, decision, amount, timestamp) => {} }));
 */
"""

_ADAPTER = r"""
function createPolicyMiddleware(options = {}) {
  const store = options.store || new PolicyStateStore();
  const auditHook = options.auditHook || defaultAuditHook;

  return function x402PolicyMiddleware(req, res, next) {
    const ctx = buildContext(req.headers, req.ip, req.path);
    if (ctx === null) {
      res.status(400).json({ error: 'invalid x-402-estimated-cost header' });
      return;
    }

    const decision = evaluate(ctx, store);
    auditHook(subjectKey(ctx), decision.rule_id || null, decision.decision, ctx.estimated_cost, ctx.timestamp);

    if (!decision.allowed) {
      const { status, headers, body } = rejection(decision, ctx);
      res.set(headers).status(status).json(body);
      return;
    }

    res.on('finish', () => {
      if (res.statusCode < 400) commit(ctx, store);
    });
    next();
  };
}

module.exports = {
  POLICY_RULES,
  PolicyStateStore,
  createPolicyMiddleware,
  evaluate,
  commit,
};
"""


def render(ir: MiddlewareIR) -> str:
    """Render Express middleware source for ``ir``."""
    return fill(_HEADER, **header_values(ir)) + "\n" + render_core(ir) + _ADAPTER
