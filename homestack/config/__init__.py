"""Configuration management."""
from homestack.config.loader import ConfigLoader
from homestack.config.validator import ConfigValidator
from homestack.errors import ConfigValidationError

__all__ = ['ConfigLoader', 'ConfigValidator', 'ConfigValidationError']
