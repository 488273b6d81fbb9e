"""Fastify renderer.

Emits a CommonJS plugin. Rejections happen in an ``onRequest`` hook; usage
is committed in ``onResponse`` when the status code is below 400.
"""

from __future__ import annotations

__all__ = ["render"]

from x402_policy.codegen.ir import MiddlewareIR
from x402_policy.codegen.renderers.base import fill, header_values
from x402_policy.codegen.renderers.javascript import render_core

_HEADER = """/**
 * x402 policy plugin for Fastify.
 *
 * Generated by x402-policy %TOOL_VERSION% from %SOURCE%. Do not edit.
 * Policy checksum: %CHECKSUM%
 *
 * Usage:
 *   fastify.register(require('./x402-policy'), { auditHook: (subjectKey, ruleId, decision, amount, timestamp) => {} });
 */
"""

_ADAPTER = r"""
async function x402PolicyPlugin(fastify, options) {
  const store = options.store || new PolicyStateStore();
  const auditHook = options.auditHook || defaultAuditHook;

  fastify.decorateRequest('x402Context', null);

  fastify.addHook('onRequest', async (request, reply) => {
    const ctx = buildContext(request.headers, request.ip, request.url.split('?')[0]);
    if (ctx === null) {
      reply.code(400).send({ error: 'invalid x-402-estimated-cost header' });
      return reply;
    }

    const decision = evaluate(ctx, store);
    auditHook(subjectKey(ctx), decision.rule_id || null, decision.decision, ctx.estimated_cost, ctx.timestamp);

    if (!decision.allowed) {
      const { status, headers, body } = rejection(decision, ctx);
      reply.code(status).headers(headers).send(body);
      return reply;
    }
    request.x402Context = ctx;
    return undefined;
  });

  fastify.addHook('onResponse', async (request, reply) => {
    if (request.x402Context && reply.statusCode < 400) commit(request.x402Context, store);
  });
}

// Apply to the parent scope instead of an encapsulated child context
x402PolicyPlugin[Symbol.for('skip-override')] = true;

module.exports = x402PolicyPlugin;
module.exports.POLICY_RULES = POLICY_RULES;
module.exports.PolicyStateStore = PolicyStateStore;
module.exports.evaluate = evaluate;
module.exports.commit = commit;
"""


def render(ir: MiddlewareIR) -> str:
    """Render Fastify plugin source for ``ir``."""
    return fill(_HEADER, **header_values(ir)) + "\n" + render_core(ir) + _ADAPTER
