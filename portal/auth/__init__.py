"""
Session management for the web portal.

Design goals:
- Tokens issued by a GoTrue-compatible identity provider, never minted locally.
- Cookie-based session (HttpOnly, signed) with no server-side session table.
- Lazy, request-triggered refresh; no background scheduler.
"""
