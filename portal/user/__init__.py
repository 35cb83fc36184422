"""User accounts: provider identity plus the application's user row."""

from __future__ import annotations
