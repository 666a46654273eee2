"""
Module: config
Description: Package initialization for SDK configuration.

- settings: pydantic-settings model read from ADCIDER_* environment variables
"""

__all__ = []
