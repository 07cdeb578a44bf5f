"""
Sentinel Configuration Module

Provides centralized configuration management with:
- Environment-based settings loading
- Per-task inference timeout table
- Structured logging setup
"""

from sentinel.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
