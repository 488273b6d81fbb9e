"""x402-policy: access and spending policy engine for machine clients.

Declare allow/deny lists, rate limits and spending caps in a small YAML
policy file, enforce them at request time with the evaluation engine, or
generate framework middleware that reproduces the same decisions.
"""

__version__ = "0.3.0"
