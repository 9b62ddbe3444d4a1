"""Configuration management for the voting protocol."""

from .config import (
    SystemConfig,
    ElectionPolicy,
    ArtifactPaths,
    ConfigurationError,
    load_config,
    save_config
)

__all__ = ['SystemConfig', 'ElectionPolicy', 'ArtifactPaths', 'ConfigurationError',
           'load_config', 'save_config']
