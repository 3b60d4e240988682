"""
Configuration module for the PSA engine.
"""
from .settings import (
    PsaEngineConfig,
    get_config,
    load_config,
    reload_config
)

__all__ = [
    'PsaEngineConfig',
    'get_config',
    'load_config',
    'reload_config'
]
