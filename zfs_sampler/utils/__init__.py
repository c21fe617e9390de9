# zfs_sampler/utils/__init__.py - Utilities module
"""
Utility functions and helpers.

This module provides:
- config.py: Configuration management
- logger.py: Logging setup
- helpers.py: Environment checks and small helpers
"""
