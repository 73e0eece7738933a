"""Authenticated learner identity."""

from __future__ import annotations

from models.base import CamelModel


class Learner(CamelModel):
    """The caller resolved from a bearer token. ``id`` owns submissions."""

    id: str
    email: str | None = None
