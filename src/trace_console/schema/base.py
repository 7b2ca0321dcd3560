"""Shared Pydantic base class with consistent configuration."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class TypedBaseModel(BaseModel):
    """Centralized base so every wire schema inherits the same contract.

    Upstream records are produced by the pipeline executor and may grow new
    keys at any time, so unknown fields are kept rather than rejected; the
    engine hands them back untouched.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )
