import json
import logging

import pytest

from constants import DEFAULT_FIELD_PARAMS, DEFAULT_SIMULATION_PARAMS, PRESETS
from utils import load_config, resolve_parameters, setup_logging


def test_defaults_without_config():
    sim_params, field_params = resolve_parameters({})
    assert sim_params == DEFAULT_SIMULATION_PARAMS
    assert field_params == DEFAULT_FIELD_PARAMS


def test_preset_overrides_defaults():
    sim_params, field_params = resolve_parameters({'simulation_parameters': {'preset': 'storm'}})
    assert sim_params['particle_count'] == PRESETS['storm']['particle_count']
    assert field_params['flow_intensity'] == PRESETS['storm']['flow_intensity']
    assert field_params['noise_layers'] == PRESETS['storm']['noise_layers']
    assert 'preset' not in sim_params


def test_explicit_config_wins_over_preset():
    config = {
        'simulation_parameters': {'preset': 'dense', 'particle_count': 77},
        'field_parameters': {'flow_intensity': 9.0},
    }
    sim_params, field_params = resolve_parameters(config)
    assert sim_params['particle_count'] == 77
    assert sim_params['max_trail_length'] == PRESETS['dense']['max_trail_length']
    assert field_params['flow_intensity'] == 9.0


def test_unknown_preset_falls_back(caplog):
    with caplog.at_level(logging.WARNING):
        sim_params, _ = resolve_parameters({'simulation_parameters': {'preset': 'disco'}})
    assert sim_params['particle_count'] == DEFAULT_SIMULATION_PARAMS['particle_count']
    assert "disco" in caplog.text


def test_every_preset_names_known_parameters():
    known = set(DEFAULT_SIMULATION_PARAMS) | set(DEFAULT_FIELD_PARAMS)
    for preset in PRESETS.values():
        assert set(preset) <= known


def test_load_config(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({'run_control': {'max_steps': 3}}))
    assert load_config(str(path))['run_control']['max_steps'] == 3

    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.json"))

    path.write_text("{")
    with pytest.raises(json.JSONDecodeError):
        load_config(str(path))


def test_setup_logging_creates_the_log_directory(tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        setup_logging({'logging': {'level': 'debug', 'log_file': str(log_file)}})
        assert log_file.parent.is_dir()
        assert root.level == logging.DEBUG
        for handler in root.handlers:
            handler.close()
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
