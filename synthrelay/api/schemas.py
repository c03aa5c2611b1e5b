"""
Pydantic models for API request validation.

Identifiers are optional at the model level so the routes can answer a
missing id with the 400 body peers expect instead of a 422.
"""

from typing import Any

from pydantic import BaseModel, Field


# ============================================================================
# Controller Lock Schemas
# ============================================================================


class ControllerAcquireRequest(BaseModel):
    controllerClientId: str | None = None
    force: bool = False
    userId: str | None = None


class ControllerReleaseRequest(BaseModel):
    controllerClientId: str | None = None
    newControllerClientId: str | None = None
    userId: str | None = None


# ============================================================================
# Signaling Schemas
# ============================================================================


class SignalSendRequest(BaseModel):
    target: str | None = None
    message: dict[str, Any] | None = Field(default=None)
