# Copyright (c) Syntropy Systems
"""Shared Pydantic model helpers for apkregress."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict


class RegressBaseModel(BaseModel):
    """Base model with shared config for apkregress schemas."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
    )


class FrozenModel(BaseModel):
    """Immutable record; instances are never mutated after construction."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="forbid",
        frozen=True,
    )
