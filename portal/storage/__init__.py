"""User datastore: one Postgres table of user rows keyed by identity-provider id."""

from __future__ import annotations
