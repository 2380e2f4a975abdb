"""
Authentication package.

Exports the BearerAuth dependency, the Principal it resolves, and the token
parsing helpers.

CHANGELOG:
- 2026-03-09: Initial creation (STORY-015)

TODO:
- None
"""

from pvbilling.auth.bearer import BearerAuth, Principal, parse_api_tokens, verify_bearer_token

__all__ = ["BearerAuth", "Principal", "parse_api_tokens", "verify_bearer_token"]
