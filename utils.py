# utils.py
"""
Shared plumbing for the flow field app: logging, the JSON run
configuration and the preset overlay that turns it into the parameter
sets the field evaluator and the particle simulation are built from.
"""
import logging
import logging.handlers
import json
import os
from typing import Dict, Any, Tuple

from constants import DEFAULT_FIELD_PARAMS, DEFAULT_PRESET, DEFAULT_SIMULATION_PARAMS, PRESETS

# --- Data Contracts ---
#
# setup_logging(config: Dict[str, Any]) -> None:
#   - Inputs: the full config; only its "logging" section is read:
#     "level", "format", "log_file", "max_bytes", "backup_count".
#   - Side Effects: Replaces the root logger's handlers with a console
#     handler and a size-rotated file handler, creating the log directory
#     when needed. Third-party loggers (Numba's compiler, Pygame) are held
#     at WARNING so DEBUG runs stay readable.
#
# load_config(path: str) -> Dict[str, Any]:
#   - Raises: FileNotFoundError / json.JSONDecodeError, logged first.
#
# resolve_parameters(config: Dict[str, Any]) -> Tuple[Dict, Dict]:
#   - Outputs: (simulation parameters, field parameters), each the engine
#     defaults overlaid with the selected preset and then with the
#     explicit "simulation_parameters" / "field_parameters" sections.
#   - Invariants: explicit config keys always win over the preset.

NOISY_LIBRARY_LOGGERS = ("numba", "pygame")


def setup_logging(config: Dict[str, Any]) -> None:
    """
    Routes all log records to the console and to a rotating log file.
    """
    section = config.get('logging', {})
    level = str(section.get('level', 'INFO')).upper()
    log_file = section.get('log_file', 'logs/flowfield.log')
    formatter = logging.Formatter(section.get('format', '%(asctime)s - %(levelname)s - %(message)s'))

    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    # Calling this twice must not double every line.
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handlers = [
        logging.StreamHandler(),
        logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=int(section.get('max_bytes', 1024 * 1024)),
            backupCount=int(section.get('backup_count', 5)),
        ),
    ]
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in NOISY_LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, root.level))

    logging.info(f"Logging initialized at {level}, writing to {log_file}.")


def load_config(path: str) -> Dict[str, Any]:
    """Reads the JSON run configuration."""
    logging.info(f"Reading configuration {path}")
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except FileNotFoundError:
        logging.error(f"No configuration file at {path}.")
        raise
    except json.JSONDecodeError as e:
        logging.error(f"Configuration {path} is not valid JSON: {e}")
        raise

def resolve_parameters(config: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Builds the simulation and field parameter sets from defaults, preset and config."""
    sim_config = dict(config.get('simulation_parameters', {}))
    field_config = dict(config.get('field_parameters', {}))

    preset_name = sim_config.pop('preset', DEFAULT_PRESET)
    if preset_name not in PRESETS:
        logging.warning(f"Unknown preset '{preset_name}'. Falling back to '{DEFAULT_PRESET}'.")
        preset_name = DEFAULT_PRESET

    sim_params = dict(DEFAULT_SIMULATION_PARAMS)
    field_params = dict(DEFAULT_FIELD_PARAMS)
    for key, value in PRESETS[preset_name].items():
        if key in sim_params:
            sim_params[key] = value
        elif key in field_params:
            field_params[key] = value
        else:
            logging.warning(f"Preset '{preset_name}' sets unknown parameter '{key}'.")

    sim_params.update(sim_config)
    field_params.update(field_config)
    logging.info(f"Using preset '{preset_name}'.")
    return sim_params, field_params
