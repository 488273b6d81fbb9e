"""Framework-independent JavaScript shared by the Express and Fastify renderers.

Provides the embedded constants, pattern matching, the in-process state
store, evaluate/commit with the same precedence and window semantics as
PolicyEngine, and the default audit hook.
"""

from __future__ import annotations

__all__ = ["render_core"]

from x402_policy.codegen.ir import MiddlewareIR
from x402_policy.codegen.renderers.base import fill, header_values
from x402_policy.constants import COST_HEADER_PATTERN

_JS_CORE = r"""
'use strict';

const fs = require('fs');

// Embedded policy (policy format %VERSION%, %RULE_COUNT% rules)
const POLICY_RULES = %RULES%;
const STAGES = %STAGES%;
const PRICING = %PRICING%;
const AUDIT = %AUDIT%;

const LIST_FIELDS = ['agent_id', 'wallet_address', 'ip_address'];
const AMOUNT_SCALE = 1e9;
const COST_RE = /^%COST_PATTERN%$/;

function ruleId(index) {
  return `rule_${index}`;
}

function roundAmount(amount) {
  return Math.round(amount * AMOUNT_SCALE) / AMOUNT_SCALE;
}

function matchPattern(pattern, value) {
  if (pattern.endsWith('*')) {
    return value.startsWith(pattern.slice(0, -1));
  }
  return pattern === value;
}

// Longest literal prefix wins; an exact literal beats a wildcard of the same prefix
function mostSpecificMatch(patterns, value) {
  let best = null;
  let bestLength = -1;
  let bestExact = false;
  for (const pattern of patterns) {
    if (!matchPattern(pattern, value)) continue;
    const exact = !pattern.endsWith('*');
    const length = exact ? pattern.length : pattern.length - 1;
    if (best === null || length > bestLength || (length === bestLength && exact && !bestExact)) {
      best = pattern;
      bestLength = length;
      bestExact = exact;
    }
  }
  return best;
}

// Allowlist values are unioned per field; the first allowlist names the group
const ALLOW_GROUPS = new Map();
for (const index of STAGES.allowlist) {
  const rule = POLICY_RULES[index];
  if (!ALLOW_GROUPS.has(rule.field)) {
    ALLOW_GROUPS.set(rule.field, { ruleId: ruleId(index), patterns: [] });
  }
  ALLOW_GROUPS.get(rule.field).patterns.push(...rule.values);
}

function subjectKey(ctx) {
  for (const field of LIST_FIELDS) {
    if (ctx[field]) return `${field}:${ctx[field]}`;
  }
  return 'anonymous';
}

function resolvePrice(path) {
  const routes = Object.keys(PRICING.routes);
  const best = path && routes.length ? mostSpecificMatch(routes, path) : null;
  return best === null ? PRICING.amount : PRICING.routes[best];
}

class PolicyStateStore {
  constructor() {
    this.rate = new Map();
    this.spending = new Map();
  }

  // Instants in [now - window, now]; future instants are not counted
  rateWindow(key, now, windowSeconds) {
    let count = 0;
    let oldest = null;
    for (const instant of this.rate.get(key) || []) {
      if (instant >= now - windowSeconds && instant <= now) {
        count += 1;
        if (oldest === null) oldest = instant;
      }
    }
    return { count, oldest };
  }

  recordRequest(key, now, windowSeconds) {
    const kept = (this.rate.get(key) || []).filter((instant) => instant >= now - windowSeconds);
    kept.push(now);
    kept.sort((a, b) => a - b);
    this.rate.set(key, kept);
  }

  spendingWindow(key, now, windowSeconds) {
    const entry = this.spending.get(key);
    if (!entry || now - entry.windowStart > windowSeconds) return 0;
    return entry.accumulated;
  }

  recordSpend(key, amount, now, windowSeconds) {
    let entry = this.spending.get(key);
    if (!entry || now - entry.windowStart > windowSeconds) {
      entry = { accumulated: 0, windowStart: now };
      this.spending.set(key, entry);
    }
    entry.accumulated = roundAmount(entry.accumulated + amount);
  }
}

// Read-only: deny -> allowlist -> rate limit -> spending cap -> allow
function evaluate(ctx, store) {
  const now = ctx.timestamp;

  for (const index of STAGES.denylist) {
    const rule = POLICY_RULES[index];
    const value = ctx[rule.field];
    if (value && rule.values.some((pattern) => matchPattern(pattern, value))) {
      return { allowed: false, decision: 'deny', reason: 'denylisted', rule_id: ruleId(index) };
    }
  }

  const matchedPatterns = {};
  for (const [field, group] of ALLOW_GROUPS) {
    const value = ctx[field];
    if (!value) continue;
    const best = mostSpecificMatch(group.patterns, value);
    if (best === null) {
      return { allowed: false, decision: 'deny', reason: 'not in allowlist', rule_id: group.ruleId };
    }
    matchedPatterns[field] = best;
  }

  const subject = subjectKey(ctx);

  for (const index of STAGES.rate_limit) {
    const rule = POLICY_RULES[index];
    const view = store.rateWindow(`${ruleId(index)}|${subject}`, now, rule.window_seconds);
    if (view.count >= rule.max_requests) {
      const oldest = view.oldest === null ? now : view.oldest;
      return {
        allowed: false,
        decision: 'rate_limited',
        reason: 'rate limit exceeded',
        retry_after: Math.max(1, Math.ceil(oldest + rule.window_seconds - now)),
        rule_id: ruleId(index),
      };
    }
  }

  for (const index of STAGES.spending_cap) {
    const rule = POLICY_RULES[index];
    const current = store.spendingWindow(`${ruleId(index)}|${subject}`, now, rule.window_seconds);
    if (roundAmount(current + ctx.estimated_cost) > rule.max_amount) {
      return {
        allowed: false,
        decision: 'spending_cap_exceeded',
        reason: 'spending cap exceeded',
        spending: {
          current,
          limit: rule.max_amount,
          remaining: Math.max(roundAmount(rule.max_amount - current), 0),
          currency: rule.currency,
        },
        rule_id: ruleId(index),
      };
    }
  }

  return { allowed: true, decision: 'allow', reason: null, matched_patterns: matchedPatterns };
}

// Call only after the protected handler succeeded
function commit(ctx, store) {
  const subject = subjectKey(ctx);
  for (const index of STAGES.rate_limit) {
    const rule = POLICY_RULES[index];
    store.recordRequest(`${ruleId(index)}|${subject}`, ctx.timestamp, rule.window_seconds);
  }
  for (const index of STAGES.spending_cap) {
    const rule = POLICY_RULES[index];
    store.recordSpend(`${ruleId(index)}|${subject}`, ctx.estimated_cost, ctx.timestamp, rule.window_seconds);
  }
}

function csvField(value) {
  const text = value === null || value === undefined ? '' : String(value);
  return /[",\n]/.test(text) ? `"${text.replace(/"/g, '""')}"` : text;
}

// Audit hook signature: (subjectKey, ruleId, decision, amount, timestamp) -> void
function defaultAuditHook(subject, rule, decision, amount, timestamp) {
  if (!AUDIT.enabled || !AUDIT.destination) return;
  const line = AUDIT.format === 'csv'
    ? [timestamp, subject, rule, decision, amount].map(csvField).join(',')
    : JSON.stringify({ timestamp, subject_key: subject, rule_id: rule, decision, amount });
  if (AUDIT.destination === 'stdout') {
    process.stdout.write(`${line}\n`);
  } else {
    fs.appendFileSync(AUDIT.destination, `${line}\n`);
  }
}

// Returns null when the cost header is not an unsigned decimal or overflows
function buildContext(headers, ip, path) {
  const rawCost = headers['x-402-estimated-cost'];
  if (rawCost !== undefined && (typeof rawCost !== 'string' || !COST_RE.test(rawCost))) return null;
  const cost = rawCost === undefined ? resolvePrice(path) : Number(rawCost);
  if (!Number.isFinite(cost) || cost < 0) return null;
  return {
    agent_id: headers['x-agent-id'] || null,
    wallet_address: headers['x-wallet-address'] || null,
    ip_address: ip || null,
    estimated_cost: cost,
    timestamp: Date.now() / 1000,
    path,
  };
}

function rejection(decision, ctx) {
  if (decision.decision === 'rate_limited') {
    return { status: 429, headers: { 'Retry-After': String(decision.retry_after) }, body: decision };
  }
  if (decision.decision === 'spending_cap_exceeded') {
    const memo = PRICING.memo_prefix ? `${PRICING.memo_prefix}${subjectKey(ctx)}` : null;
    return {
      status: 402,
      headers: {},
      body: { ...decision, payment: { amount: ctx.estimated_cost, currency: PRICING.currency, memo } },
    };
  }
  return { status: 403, headers: {}, body: decision };
}
""".lstrip("\n")


def render_core(ir: MiddlewareIR) -> str:
    """Render the shared JavaScript block for ``ir``."""
    values = header_values(ir)
    values["COST_PATTERN"] = COST_HEADER_PATTERN
    values.update(
        RULES=ir.rules_literal,
        STAGES=ir.stage_plan_literal,
        PRICING=ir.pricing_literal,
        AUDIT=ir.audit_literal,
    )
    return fill(_JS_CORE, **values)
