# ============================================================================
# CONFIG PACKAGE INIT
# ============================================================================
# STATUS: Config - package exports and singleton
# PURPOSE: Configuration package exports
# CREATED: 19 OCT 2026
# EXPORTS: AppConfig, StorageConfig, DeploymentConfig, get_config, debug_config
# DEPENDENCIES: domain config modules
# ============================================================================

"""
Configuration Package - Domain-Specific Configuration Modules

Structure:
    config/
    ├── __init__.py              # This file - exports and singleton
    ├── app_config.py            # Main config (composes domain configs)
    ├── storage_config.py        # Azure Blob account, container, bundle layout
    ├── deployment_config.py     # Fleet flag, runner, poll intervals, timeouts
    └── defaults.py              # Default values

Usage:
    # Singleton pattern (preferred)
    from config import get_config
    config = get_config()
    timeout = config.deployment.fleet_join_timeout_seconds

    # Debug output
    from config import debug_config
    info = debug_config()  # Secrets masked
"""

from typing import Optional

from .storage_config import StorageConfig
from .deployment_config import DeploymentConfig
from .app_config import AppConfig


# ============================================================================
# SINGLETON PATTERN
# ============================================================================

_config_instance: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Get global configuration singleton.

    Returns:
        AppConfig instance loaded from environment
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = AppConfig.from_environment()
    return _config_instance


def reset_config() -> None:
    """Drop the singleton so the next get_config() re-reads the environment."""
    global _config_instance
    _config_instance = None


def debug_config() -> dict:
    """
    Get sanitized configuration for debugging (masks sensitive values).

    Returns:
        Dictionary with configuration values, secrets masked
    """
    try:
        config = get_config()
        return {
            'storage': config.storage.debug_dict(),
            'deployment': config.deployment.debug_dict(),
            'aws_region': config.aws_region,
            'aws_profile': config.aws_profile,
            'debug_mode': config.debug_mode,
            'environment': config.environment,
            'log_level': config.log_level,
            'job_executor_max_workers': config.job_executor_max_workers,
        }
    except Exception as e:
        return {'error': f'Configuration validation failed: {e}'}


__all__ = [
    'AppConfig',
    'StorageConfig',
    'DeploymentConfig',
    'get_config',
    'reset_config',
    'debug_config',
]
