"""
Configuration loading for the command-line tools.
"""

import copy
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError
from .hand_eye_solver import METHOD_MAP, MODES
from .point_cloud import Axis
from .range_normalizer import colormap_from_name

DEFAULT_CONFIG: Dict[str, Any] = {
    'checkerboard': {
        'columns': 9,        # inner corners per row
        'rows': 6,           # inner corners per column
        'square_size': 30.0,  # same unit as the point cloud (mm)
    },
    'calibration': {
        'mode': 'eye_in_hand',
        'method': 'TSAI',
        'transform_key': 'PoseState',
    },
    'visualization': {
        'axis': 'z',
        'colormap': 'JET',
        'out_range': [0, 255],
        'roi': None,         # [x, y, width, height]
    },
    'processing': {
        'workers': 1,
    },
}


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load a YAML configuration file on top of :data:`DEFAULT_CONFIG`.

    Args:
        config_path: YAML file, or None for the defaults only

    Returns:
        Validated configuration dictionary
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    if config_path:
        try:
            with open(config_path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"Could not read config file {config_path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {config_path} must contain a mapping")
        _merge(config, data)
    validate_config(config)
    return config


def _merge(base: Dict[str, Any], override: Dict[str, Any]):
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value


def validate_config(config: Dict[str, Any]):
    for section in DEFAULT_CONFIG:
        if not isinstance(config.get(section), dict):
            raise ConfigError(f"{section} must be a mapping, got {config.get(section)!r}")

    board = config['checkerboard']
    if _number(board, 'checkerboard', 'columns', int) < 2 or \
            _number(board, 'checkerboard', 'rows', int) < 2:
        raise ConfigError("checkerboard.columns and checkerboard.rows must be >= 2")
    if _number(board, 'checkerboard', 'square_size', float) <= 0:
        raise ConfigError("checkerboard.square_size must be positive")

    calib = config['calibration']
    if calib['mode'] not in MODES:
        raise ConfigError(f"calibration.mode must be one of {MODES}, got {calib['mode']}")
    if str(calib['method']).upper() not in METHOD_MAP:
        raise ConfigError(f"calibration.method must be one of {sorted(METHOD_MAP)}")

    vis = config['visualization']
    try:
        Axis.parse(vis['axis'])
    except ValueError as e:
        raise ConfigError(f"visualization.axis: {e}") from e
    colormap_from_name(vis['colormap'])
    low, high = _int_list(vis['out_range'], 2, 'visualization.out_range', '[low, high]')
    if high <= low:
        raise ConfigError(f"visualization.out_range must be increasing, got {vis['out_range']}")
    if vis['roi'] is not None:
        _, _, width, height = _int_list(vis['roi'], 4, 'visualization.roi',
                                        '[x, y, width, height]')
        if width <= 0 or height <= 0:
            raise ConfigError(f"visualization.roi must have a positive size, got {vis['roi']}")

    if _number(config['processing'], 'processing', 'workers', int) < 1:
        raise ConfigError("processing.workers must be >= 1")


def _number(section: Dict[str, Any], section_name: str, key: str, kind):
    value = section.get(key)
    if isinstance(value, bool):
        raise ConfigError(f"{section_name}.{key} must be a number, got {value!r}")
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{section_name}.{key} must be a number, got {value!r}") from None


def _int_list(value, length: int, name: str, layout: str):
    if not isinstance(value, (list, tuple)) or len(value) != length:
        raise ConfigError(f"{name} must be {layout}, got {value!r}")
    try:
        return [int(v) for v in value]
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be {layout} integers, got {value!r}") from None
