"""
Configuration management for the typings generator.
"""

from sn_typings.config.loader import (
    CacheConfig,
    ConfigLoader,
    GeneratorConfig,
    InstanceConfig,
    LoggingConfig,
    RenderConfig,
)

__all__ = [
    "CacheConfig",
    "ConfigLoader",
    "GeneratorConfig",
    "InstanceConfig",
    "LoggingConfig",
    "RenderConfig",
]
