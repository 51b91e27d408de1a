"""
TokenHeadroom — The Cognitive Capacity Manager

Inspects a project's context-budget usage and applies a fixed set of
remediation verbs (ignore-rule and settings edits) under a policy layer.

  TokenHeadroom = Raw Context Tokens - Optimized Context Tokens
"""

__version__ = "1.2.0"

TOOL_NAME = "TokenHeadroom"


class HeadroomError(Exception):
    """Base class for every error raised by TokenHeadroom."""
    pass
