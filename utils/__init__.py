#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Utils Module for Classroom Forest
Common utility functions and classes used across the application
"""

from .config import load_configuration, save_configuration, get_config_value, set_config_value
from .errors import ConfigurationError, DataQualityWarning, StaleSessionError
from .logging_utils import setup_logging
from .serialization_utils import make_json_serializable, safe_json_dump, safe_json_dumps

__all__ = [
    'load_configuration',
    'save_configuration',
    'get_config_value',
    'set_config_value',
    'ConfigurationError',
    'DataQualityWarning',
    'StaleSessionError',
    'setup_logging',
    'make_json_serializable',
    'safe_json_dump',
    'safe_json_dumps'
]
