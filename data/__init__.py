#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Data Module for Classroom Forest
Handles column metadata and feature encoding
"""

from .dataset import ColumnMeta, infer_column_meta
from .feature_encoder import FeatureEncoder, EncodingInfo, EncodedMatrix, PreparedDataset

__all__ = ['ColumnMeta', 'infer_column_meta', 'FeatureEncoder', 'EncodingInfo', 'EncodedMatrix',
           'PreparedDataset']
