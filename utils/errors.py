#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Error Types for Classroom Forest
Configuration failures, data quality warnings and session liveness errors
"""

from typing import Optional


class ConfigurationError(ValueError):
    """Raised before training starts when the run cannot be configured"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class DataQualityWarning(UserWarning):
    """
    Non-fatal data problem recorded alongside a run.

    Instances are collected on the prepared dataset and the session state,
    they are never raised.
    """

    def __init__(self, message: str, column: Optional[str] = None, count: int = 0):
        super().__init__(message)
        self.message = message
        self.column = column
        self.count = count

    def __str__(self):
        return self.message

    def to_dict(self):
        return {'message': self.message, 'column': self.column, 'count': self.count}


class StaleSessionError(RuntimeError):
    """A session claims to be running but has no live trainer or progress behind it"""
