"""Configuration loading utilities for pinst."""

from .schema import (
    CookConfig,
    InstancerFileModel,
    load_config,
)

__all__ = ["CookConfig", "InstancerFileModel", "load_config"]
