"""Application-wide constants for x402-policy.

Constants that define policy semantics and defaults.
For user-configurable settings per deployment, see config.py.
"""

from platformdirs import user_config_dir

APP_NAME: str = "x402-policy"

# ============================================================================
# Policy Language
# ============================================================================

# Rule type tags accepted in the "type" field of a policy entry
RULE_TYPES: tuple[str, ...] = ("allowlist", "denylist", "rate_limit", "spending_cap")

# Request attributes that allowlist/denylist rules may target.
# Order matters: it is also the order used to pick a request's subject key.
LIST_FIELDS: tuple[str, ...] = ("agent_id", "wallet_address", "ip_address")

# Wildcard character; only valid as the final character of a pattern
WILDCARD: str = "*"

# Window bounds (seconds) for rate limits and spending caps
MIN_WINDOW_SECONDS: int = 1
MAX_WINDOW_SECONDS: int = 31_536_000  # 365 days

# Currency codes: uppercase letters/digits (USDC, SOL, USD, ...)
MIN_CURRENCY_LENGTH: int = 2
MAX_CURRENCY_LENGTH: int = 10

DEFAULT_POLICY_VERSION: str = "1.0"

# Policy version strings are embedded in generated middleware headers
MAX_VERSION_LENGTH: int = 32

# ============================================================================
# Pricing / Audit defaults (mirrors the policy file's optional sections)
# ============================================================================

DEFAULT_PRICE_AMOUNT: float = 0.01
DEFAULT_PRICE_CURRENCY: str = "USDC"
DEFAULT_AUDIT_DESTINATION: str = "stdout"

# ============================================================================
# Evaluation
# ============================================================================

# Subject key used when a request carries no identity attribute
ANONYMOUS_SUBJECT: str = "anonymous"

# Smallest Retry-After we ever report for a rate-limited request
MIN_RETRY_AFTER_SECONDS: int = 1

# Deny reasons (stable strings, part of the decision output contract)
REASON_DENYLISTED: str = "denylisted"
REASON_NOT_IN_ALLOWLIST: str = "not in allowlist"
REASON_RATE_LIMITED: str = "rate limit exceeded"
REASON_SPENDING_CAP: str = "spending cap exceeded"

# ============================================================================
# HTTP request mapping (PEP and generated middleware)
# ============================================================================

HEADER_AGENT_ID: str = "x-agent-id"
HEADER_WALLET_ADDRESS: str = "x-wallet-address"
HEADER_ESTIMATED_COST: str = "x-402-estimated-cost"
# Unsigned decimal with optional exponent, matched against the whole header value
COST_HEADER_PATTERN: str = r"[0-9]+(\.[0-9]+)?([eE][+-]?[0-9]+)?"

STATUS_PAYMENT_REQUIRED: int = 402
STATUS_FORBIDDEN: int = 403
STATUS_TOO_MANY_REQUESTS: int = 429

# ============================================================================
# Code generation
# ============================================================================

SUPPORTED_FRAMEWORKS: tuple[str, ...] = ("express", "fastify", "fastapi")

# Name of the constant that carries the embedded rule set in generated code
EMBEDDED_RULES_CONSTANT: str = "POLICY_RULES"

# ============================================================================
# Configuration and logs
# ============================================================================

CONFIG_DIR: str = user_config_dir(APP_NAME)
CONFIG_FILENAME: str = "x402_policy_config.json"
LOG_SUBDIR: str = "x402_policy_logs"
SYSTEM_LOGGER_NAME: str = "x402-policy.system"
DECISION_LOGGER_NAME: str = "x402-policy.audit.decisions"
