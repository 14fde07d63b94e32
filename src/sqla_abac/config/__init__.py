"""Configuration module for sqla-abac."""

from __future__ import annotations

from sqla_abac.config._config import AbacConfig, configure, get_global_config

__all__ = ["AbacConfig", "configure", "get_global_config"]
