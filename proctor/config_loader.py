"""
Configuration loader for proctoring parameters.

Handles loading and validating monitor configuration files.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

from .models import MonitorConfig

logger = logging.getLogger(__name__)


def load_config(config_path: Optional[Path] = None) -> MonitorConfig:
    """
    Load monitor configuration from a JSON file.

    Args:
        config_path: Path to the configuration file. If None, looks for
                    'proctor_config.json' next to the executable/script.

    Returns:
        MonitorConfig object with validated configuration

    Raises:
        ValueError: If config is invalid
    """
    if config_path is None:
        if getattr(sys, 'frozen', False):
            base_dir = Path(sys.executable).parent
        else:
            base_dir = Path(__file__).parent.parent

        config_path = base_dir / "proctor_config.json"

    config_path = Path(config_path)
    if not config_path.exists():
        logger.warning("Config file '%s' not found. Using default configuration.", config_path)
        return MonitorConfig.default()

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file: {e}")
    except OSError as e:
        raise ValueError(f"Error reading config file: {e}")

    if not isinstance(data, dict):
        raise ValueError("Invalid configuration: top level must be a JSON object")

    try:
        config = MonitorConfig.from_dict(data)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid configuration: {e}")

    is_valid, error_message = config.validate()
    if not is_valid:
        raise ValueError(f"Invalid configuration: {error_message}")

    return config


def create_sample_config(output_path: Path):
    """
    Create a sample configuration file for exam administrators.

    Args:
        output_path: Path where to save the sample config
    """
    sample_config = {
        "max_warnings": 2,
        "tick_interval_seconds": 1.0,
        "violation_cooldown_seconds": 1.0,
        "checkpoint_interval_seconds": 30,
        "compliance_probe_interval_seconds": 30,
        "auto_submit_attempts": 2,
        "_comment": "Sample proctoring configuration. Adjust values as needed.",
        "_instructions": {
            "max_warnings": "Warnings shown before auto-submit; the violation after the last warning submits",
            "tick_interval_seconds": "Seconds of real time per countdown step",
            "violation_cooldown_seconds": "Window after a violation in which further violations are ignored",
            "checkpoint_interval_seconds": "How often progress is saved",
            "compliance_probe_interval_seconds": "How often lockdown is re-checked",
            "auto_submit_attempts": "Attempts for automatic submission (first try plus retries)"
        }
    }

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(sample_config, f, indent=2)

    logger.info("Sample configuration created at: %s", output_path)
