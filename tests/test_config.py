"""Configuration defaults, validation and YAML loading."""
from pathlib import Path

import pytest

from ConfigClass.config import ConfigurationError, SimulationConfig, load_config

CFG_DIR = Path(__file__).resolve().parent.parent / "cfgs"


def test_defaults_match_reference_values():
    cfg = SimulationConfig()
    assert cfg.area_size == (1000.0, 500.0)
    assert cfg.num_sensors == 100
    assert cfg.num_clusters == 5
    assert cfg.clustering_interval == 1
    assert cfg.variable_range("salinity") == (30.0, 38.0)
    assert cfg.variable_range("ph") == (7.5, 8.5)
    assert len(cfg.ranges()) == 4


def test_default_yaml_equals_defaults():
    assert SimulationConfig.from_yaml(CFG_DIR / "default.yaml") == SimulationConfig()


def test_partial_yaml_keeps_other_defaults():
    cfg = load_config(str(CFG_DIR / "debug.yaml"))
    assert cfg.num_sensors == 20
    assert cfg.clustering_interval == 2
    assert cfg.entropy_bins == SimulationConfig().entropy_bins


def test_to_yaml_then_load(tmp_path):
    cfg = SimulationConfig(num_sensors=12, information_threshold=0.25)
    path = tmp_path / "nested" / "cfg.yaml"
    cfg.to_yaml(path)
    assert SimulationConfig.from_yaml(path) == cfg


@pytest.mark.parametrize("overrides", [
    {"clustering_interval": 0},
    {"width": 0},
    {"num_clusters": 0},
    {"energy_tx_elec": -0.1},
    {"min_ph": 9.0},
    {"information_threshold": 1.5},
    {"entropy_bins": 1},
])
def test_invalid_values_raise(overrides):
    with pytest.raises(ConfigurationError):
        SimulationConfig(**overrides)


def test_configuration_error_is_value_error():
    with pytest.raises(ValueError):
        SimulationConfig(height=-1)


def test_unknown_keys_rejected():
    with pytest.raises(ConfigurationError):
        SimulationConfig.from_dict({"num_nodes": 10})


def test_with_overrides_validates():
    cfg = SimulationConfig().with_overrides(num_sensors=7)
    assert cfg.num_sensors == 7
    with pytest.raises(ConfigurationError):
        SimulationConfig().with_overrides(history_window=0)
