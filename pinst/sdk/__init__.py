"""Programmatic entry points."""

from .run import ConfigCookResult, cook_from_config

__all__ = ["ConfigCookResult", "cook_from_config"]
