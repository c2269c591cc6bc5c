"""
Configuration management for the pose-only bundle adjustment solver.

This module defines the solver options, predefined presets, validation,
and JSON persistence utilities.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Any
import copy
import json
import os

import psutil

from .logger import get_logger

logger = get_logger("config")


# =============================================================================
# Option Groups
# =============================================================================


@dataclass
class IterationOptions:
    """Iteration control."""
    max_num_iterations: int = 100


@dataclass
class ConvergenceOptions:
    """Convergence control."""
    threshold_cost_change: float = 1e-6
    threshold_step_size: float = 1e-6


@dataclass
class OutlierOptions:
    """
    Outlier control.

    threshold_huber_loss and threshold_outlier_rejection are residual norms
    in pixels and are applied independently of each other.
    min_inlier_ratio suspends hard rejection for an iteration when fewer
    than this fraction of the depth-valid correspondences would survive.
    """
    threshold_huber_loss: float = 1.5
    threshold_outlier_rejection: float = 2.5
    min_inlier_ratio: float = 0.5


@dataclass
class DampingOptions:
    """Levenberg-Marquardt damping. initial_lambda = 0 means pure Gauss-Newton."""
    initial_lambda: float = 1e-4
    lambda_up_factor: float = 10.0
    lambda_down_factor: float = 0.1
    max_num_trials: int = 10


@dataclass
class DebugOptions:
    """Debug pose trajectory. max_debug_poses = 0 keeps every pose."""
    record_debug_poses: bool = True
    max_debug_poses: int = 1000


@dataclass
class Options:
    """Complete solver configuration."""
    iteration_handle: IterationOptions = field(default_factory=IterationOptions)
    convergence_handle: ConvergenceOptions = field(default_factory=ConvergenceOptions)
    outlier_handle: OutlierOptions = field(default_factory=OutlierOptions)
    damping_handle: DampingOptions = field(default_factory=DampingOptions)
    debug_handle: DebugOptions = field(default_factory=DebugOptions)
    num_threads: int = 1
    verbose: bool = False

    def copy(self) -> 'Options':
        return copy.deepcopy(self)


_GROUPS = {
    'iteration_handle': IterationOptions,
    'convergence_handle': ConvergenceOptions,
    'outlier_handle': OutlierOptions,
    'damping_handle': DampingOptions,
    'debug_handle': DebugOptions,
}


# =============================================================================
# Default Configurations
# =============================================================================


DEFAULT_OPTIONS = Options()


PRESET_CONFIGS = {
    'default': {},

    'fast': {
        'iteration_handle': {'max_num_iterations': 20},
        'convergence_handle': {'threshold_cost_change': 1e-4, 'threshold_step_size': 1e-5},
        'debug_handle': {'record_debug_poses': False},
    },

    'robust': {
        'iteration_handle': {'max_num_iterations': 200},
        'outlier_handle': {'threshold_huber_loss': 1.0, 'threshold_outlier_rejection': 2.0},
        'damping_handle': {'initial_lambda': 1e-2, 'max_num_trials': 20},
    },

    'precise': {
        'iteration_handle': {'max_num_iterations': 500},
        'convergence_handle': {'threshold_cost_change': 1e-12, 'threshold_step_size': 1e-10},
    },
}


PRESET_DESCRIPTIONS = {
    'default': "Balanced settings matching the reference solver configuration",
    'fast': "Few iterations and loose tolerances for real-time tracking",
    'robust': "Tighter robust thresholds and stronger damping for outlier-heavy data",
    'precise': "Many iterations and tight tolerances for offline refinement",
}


# =============================================================================
# Conversion
# =============================================================================


def options_to_dict(options: Options) -> Dict[str, Any]:
    return asdict(options)


def options_from_dict(config: Dict[str, Any]) -> Options:
    """
    Build Options from a (possibly partial) nested dictionary.

    Raises:
        ValueError: If the dictionary contains unknown groups or keys
    """
    options = Options()
    for key, value in config.items():
        if key in _GROUPS:
            group = getattr(options, key)
            if not isinstance(value, dict):
                raise ValueError(f"Option group '{key}' must be a dictionary")
            for name, item in value.items():
                if not hasattr(group, name):
                    raise ValueError(f"Unknown option: {key}.{name}")
                setattr(group, name, item)
        elif key in ('num_threads', 'verbose'):
            setattr(options, key, value)
        else:
            raise ValueError(f"Unknown option group: {key}")
    return options


def merge_options(base: Options, override: Dict[str, Any]) -> Options:
    """Return a copy of ``base`` with values from ``override`` applied."""
    merged = options_to_dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key].update(value)
        else:
            merged[key] = value
    return options_from_dict(merged)


def create_options_from_preset(preset: str) -> Options:
    """
    Create Options from a named preset.

    Raises:
        ValueError: If preset is unknown
    """
    if preset not in PRESET_CONFIGS:
        available = ', '.join(PRESET_CONFIGS.keys())
        raise ValueError(f"Unknown preset: {preset}. Available: {available}")
    return merge_options(Options(), PRESET_CONFIGS[preset])


def get_available_presets() -> List[str]:
    return list(PRESET_CONFIGS.keys())


def describe_preset(preset: str) -> str:
    return PRESET_DESCRIPTIONS.get(preset, f"Unknown preset: {preset}")


# =============================================================================
# Validation
# =============================================================================


def validate_options(options: Options) -> Dict[str, List[str]]:
    """
    Validate solver options.

    Returns:
        Dictionary with 'errors' and 'warnings' lists
    """
    errors = []
    warnings = []

    it = options.iteration_handle
    conv = options.convergence_handle
    out = options.outlier_handle
    damp = options.damping_handle
    dbg = options.debug_handle

    if not isinstance(it.max_num_iterations, int) or it.max_num_iterations < 0:
        errors.append(f"max_num_iterations must be a non-negative integer, got {it.max_num_iterations}")

    for name, value in (('threshold_cost_change', conv.threshold_cost_change),
                        ('threshold_step_size', conv.threshold_step_size),
                        ('threshold_huber_loss', out.threshold_huber_loss),
                        ('threshold_outlier_rejection', out.threshold_outlier_rejection),
                        ('initial_lambda', damp.initial_lambda)):
        if value is None or not value >= 0:
            errors.append(f"{name} must be non-negative, got {value}")

    if not 0.0 <= out.min_inlier_ratio <= 1.0:
        errors.append(f"min_inlier_ratio must be in [0, 1], got {out.min_inlier_ratio}")

    if damp.lambda_up_factor <= 1.0:
        errors.append(f"lambda_up_factor must be > 1, got {damp.lambda_up_factor}")
    if not 0.0 < damp.lambda_down_factor <= 1.0:
        errors.append(f"lambda_down_factor must be in (0, 1], got {damp.lambda_down_factor}")
    if damp.max_num_trials < 1:
        errors.append(f"max_num_trials must be at least 1, got {damp.max_num_trials}")

    if dbg.max_debug_poses < 0:
        errors.append(f"max_debug_poses must be non-negative, got {dbg.max_debug_poses}")
    if options.num_threads < 0:
        errors.append(f"num_threads must be non-negative, got {options.num_threads}")

    if not errors and out.threshold_outlier_rejection < out.threshold_huber_loss:
        warnings.append("threshold_outlier_rejection is below threshold_huber_loss; "
                        "the Huber linear regime will never be reached for inliers")
    if dbg.record_debug_poses and dbg.max_debug_poses == 0:
        warnings.append("Debug pose trajectory is unbounded")

    return {'errors': errors, 'warnings': warnings}


def resolve_num_threads(num_threads: int) -> int:
    """0 selects one worker per physical core."""
    if num_threads > 0:
        return num_threads
    cores = psutil.cpu_count(logical=False) or psutil.cpu_count() or 1
    return max(1, cores)


# =============================================================================
# Persistence
# =============================================================================


def print_options(options: Options, title: str = "Solver Options"):
    """Log options in a readable format."""
    logger.info(f"{title}:")
    for group, values in options_to_dict(options).items():
        if isinstance(values, dict):
            logger.info(f"  {group}:")
            for key, value in values.items():
                logger.info(f"    {key}: {value}")
        else:
            logger.info(f"  {group}: {values}")


def save_options(options: Options, filepath: str):
    """Save options to a JSON file."""
    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(filepath, 'w') as f:
        json.dump(options_to_dict(options), f, indent=2)
    logger.info(f"Options saved to {filepath}")


def load_options(filepath: str) -> Options:
    """
    Load options from a JSON file.

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file is not valid JSON
        ValueError: If the file contains unknown options
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Configuration file not found: {filepath}")

    with open(filepath, 'r') as f:
        config = json.load(f)

    return options_from_dict(config)
