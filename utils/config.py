#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Configuration Module for Classroom Forest
Handles loading, validating, and saving application configuration
"""

import os
import copy
import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "application": {
        "name": "Classroom Forest",
        "version": "1.0.0",
        "log_dir": "logs",
        "snapshot_file": "session_snapshot.json"
    },

    "preprocessing": {
        "normalization": True,
        "train_split_ratio": 0.8,
        "default_missing_strategy": "drop",  # Options: "drop", "mean", "mode"
        "split_seed": None
    },

    "random_forest": {
        "n_estimators": 100,
        "max_depth": 10,
        "min_samples_split": 2,
        "min_samples_leaf": 1,
        "max_features": "sqrt",  # Options: "sqrt", "log2", an integer, or None for all
        "bootstrap": True,
        "random_state": None
    },

    "neural_network": {
        "epochs": 100,
        "learning_rate": 0.01,
        "batch_size": 32,
        "hidden_layers": [64, 32]
    },

    "session": {
        "stall_threshold_seconds": 15.0,
        "liveness_check_interval_ms": 5000
    }
}

VALID_MISSING_STRATEGIES = ['drop', 'mean', 'mode']


def get_config_path() -> Path:
    """
    Get the path to the configuration file

    Returns:
        Path to the configuration file
    """
    script_dir = Path(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

    config_path = script_dir / "config.json"

    return config_path


def load_configuration(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration from file, falling back to defaults if not found

    Args:
        config_path: Explicit configuration file (defaults to config.json beside the packages)

    Returns:
        Configuration dictionary
    """
    config_path = Path(config_path) if config_path else get_config_path()

    try:
        if config_path.exists():
            logger.info(f"Loading configuration from {config_path}")

            with open(config_path, 'r') as f:
                user_config = json.load(f)

            config = merge_configs(DEFAULT_CONFIG, user_config)

            logger.info("Configuration loaded successfully")
        else:
            logger.info("No configuration file found, using defaults")
            config = copy.deepcopy(DEFAULT_CONFIG)

        validate_configuration(config)

        return config

    except (OSError, ValueError) as e:
        logger.error(f"Error loading configuration: {str(e)}", exc_info=True)
        logger.warning("Falling back to default configuration")
        return copy.deepcopy(DEFAULT_CONFIG)


def save_configuration(config: Dict[str, Any], config_path: Optional[Path] = None) -> bool:
    """
    Save configuration to file

    Args:
        config: Configuration dictionary
        config_path: Target file (defaults to config.json beside the packages)

    Returns:
        True if saved successfully, False otherwise
    """
    config_path = Path(config_path) if config_path else get_config_path()

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, 'w') as f:
            json.dump(config, f, indent=4)

        logger.info(f"Configuration saved to {config_path}")
        return True

    except OSError as e:
        logger.error(f"Error saving configuration: {str(e)}", exc_info=True)
        return False


def merge_configs(default_config: Dict[str, Any], user_config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge user configuration with defaults

    Args:
        default_config: Default configuration dictionary
        user_config: User configuration dictionary

    Returns:
        Merged configuration dictionary
    """
    merged = copy.deepcopy(default_config)

    for key, value in user_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = value

    return merged


def validate_configuration(config: Dict[str, Any]) -> bool:
    """
    Validate configuration values and log warnings for invalid settings

    Invalid values are replaced with their defaults in place.

    Args:
        config: Configuration dictionary

    Returns:
        True if all values are valid, False otherwise
    """
    valid = True

    rf_config = config.setdefault('random_forest', {})

    for param, min_val, default in [
        ('n_estimators', 1, 100),
        ('max_depth', 1, 10),
        ('min_samples_split', 2, 2),
        ('min_samples_leaf', 1, 1)
    ]:
        value = rf_config.get(param)
        if not isinstance(value, int) or isinstance(value, bool) or value < min_val:
            logger.warning(f"Invalid random_forest.{param}: {value}, using {default} instead")
            rf_config[param] = default
            valid = False

    max_features = rf_config.get('max_features')
    if not (max_features is None or max_features in ('sqrt', 'log2')
            or (isinstance(max_features, int) and not isinstance(max_features, bool) and max_features > 0)):
        logger.warning(f"Invalid random_forest.max_features: {max_features}, using 'sqrt' instead")
        rf_config['max_features'] = 'sqrt'
        valid = False

    if not isinstance(rf_config.get('bootstrap'), bool):
        logger.warning(f"Invalid random_forest.bootstrap: {rf_config.get('bootstrap')}, using True instead")
        rf_config['bootstrap'] = True
        valid = False

    nn_config = config.setdefault('neural_network', {})

    learning_rate = nn_config.get('learning_rate')
    if not isinstance(learning_rate, (int, float)) or not 0 < learning_rate <= 1:
        logger.warning(f"Invalid neural_network.learning_rate: {learning_rate}, using 0.01 instead")
        nn_config['learning_rate'] = 0.01
        valid = False

    for param, min_val, default in [('epochs', 1, 100), ('batch_size', 1, 32)]:
        value = nn_config.get(param)
        if not isinstance(value, int) or value < min_val:
            logger.warning(f"Invalid neural_network.{param}: {value}, using {default} instead")
            nn_config[param] = default
            valid = False

    prep_config = config.setdefault('preprocessing', {})

    ratio = prep_config.get('train_split_ratio')
    if not isinstance(ratio, (int, float)) or not 0 < ratio < 1:
        logger.warning(f"Invalid preprocessing.train_split_ratio: {ratio}, using 0.8 instead")
        prep_config['train_split_ratio'] = 0.8
        valid = False

    if prep_config.get('default_missing_strategy') not in VALID_MISSING_STRATEGIES:
        logger.warning(f"Invalid missing value strategy: {prep_config.get('default_missing_strategy')}, "
                       f"using 'drop' instead")
        prep_config['default_missing_strategy'] = 'drop'
        valid = False

    session_config = config.setdefault('session', {})

    for param, default in [('stall_threshold_seconds', 15.0), ('liveness_check_interval_ms', 5000)]:
        value = session_config.get(param)
        if not isinstance(value, (int, float)) or value <= 0:
            logger.warning(f"Invalid session.{param}: {value}, using {default} instead")
            session_config[param] = default
            valid = False

    return valid


def get_config_value(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """
    Get a configuration value using dot notation for nested dictionaries

    Args:
        config: Configuration dictionary
        key_path: Key path using dot notation (e.g., 'random_forest.max_depth')
        default: Default value if key not found

    Returns:
        Configuration value or default if not found
    """
    keys = key_path.split('.')
    value = config

    try:
        for key in keys:
            value = value[key]
        return value
    except (KeyError, TypeError):
        return default


def set_config_value(config: Dict[str, Any], key_path: str, value: Any) -> bool:
    """
    Set a configuration value using dot notation for nested dictionaries

    Args:
        config: Configuration dictionary
        key_path: Key path using dot notation (e.g., 'random_forest.max_depth')
        value: Value to set

    Returns:
        True if successful, False otherwise
    """
    keys = key_path.split('.')
    target = config

    try:
        for key in keys[:-1]:
            if key not in target or not isinstance(target[key], dict):
                target[key] = {}
            target = target[key]

        target[keys[-1]] = value
        return True
    except TypeError as e:
        logger.error(f"Error setting config value {key_path}: {str(e)}")
        return False
