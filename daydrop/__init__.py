"""Daydrop: date-gated daily messages and challenges for a single trip."""

from .routes import (
    create_admin_daydrop_blueprint,
    create_daydrop_blueprint,
)

__all__ = ["create_admin_daydrop_blueprint", "create_daydrop_blueprint"]
