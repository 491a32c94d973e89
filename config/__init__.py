"""Configuration management for the voting engine."""

from .config import SystemConfig, VerifierConfig, StoreConfig, load_config, save_config

__all__ = ['SystemConfig', 'VerifierConfig', 'StoreConfig', 'load_config', 'save_config']
