"""
Simulation-wide configuration for the sensor-field lifetime simulator.

Every tunable of the round loop lives in `SimulationConfig` so that the
orchestrator, the clustering strategies, the energy model and the environment
field all read the same record. Configs are validated on construction and
can be round-tripped through YAML files for batch experiments.
"""

import os
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Optional, Tuple

import yaml


VARIABLES: Tuple[str, ...] = ("temperature", "salinity", "pressure", "ph")

DEFAULT_YAML_INDENT = 2


class ConfigurationError(ValueError):
    """Raised when a configuration violates the simulator's contract."""


@dataclass
class SimulationConfig:
    """
    All simulation hyperparameters.

    Field geometry
        width, height: size of the deployment area (m).
        num_sensors, initial_energy: deployed sensors and their starting energy.

    Energy coefficients
        energy_tx_elec: fixed member transmit cost per round.
        energy_rx_elec: head receive cost per active member.
        distance_factor: attenuation coefficient applied to squared distance.
        energy_to_satellite: fixed head uplink cost per round.
        idle_drain: base drain of every alive, awake sensor per round.
        sleep_drain: drain of a sleeping cluster member per round.

    Clustering
        num_clusters: desired cluster (head) count.
        clustering_interval: rounds between topology recomputations.

    Entropy-gated sleep scheduling
        information_threshold, nearest_neighbors, entropy_bins, history_window.
    """

    width: float = 1000.0
    height: float = 500.0
    num_sensors: int = 100
    initial_energy: float = 100.0

    num_clusters: int = 5
    clustering_interval: int = 1

    energy_tx_elec: float = 0.02
    energy_rx_elec: float = 0.01
    distance_factor: float = 0.00005
    energy_to_satellite: float = 5.0
    idle_drain: float = 0.01
    sleep_drain: float = 0.001

    min_salinity: float = 30.0
    max_salinity: float = 38.0
    min_pressure: float = 1000.0
    max_pressure: float = 3000.0
    min_temperature: float = 2.0
    max_temperature: float = 25.0
    min_ph: float = 7.5
    max_ph: float = 8.5

    information_threshold: float = 0.6
    nearest_neighbors: int = 6
    entropy_bins: int = 10
    history_window: int = 10

    estimation_neighbors: int = 4
    max_rounds: int = 500

    kmeans_max_iterations: int = 100
    kmeans_convergence_threshold: float = 1.0

    # LEACH energy factor = min(cap, energy / reference)
    leach_energy_reference: float = 50.0
    leach_energy_factor_cap: float = 2.0

    # 0 disables slow environmental drift
    environment_drift_interval: int = 50
    environment_seed: int = 0

    def __post_init__(self):
        for name in ("width", "height", "initial_energy", "energy_tx_elec", "energy_rx_elec",
                     "distance_factor", "energy_to_satellite", "idle_drain", "sleep_drain",
                     "kmeans_convergence_threshold", "leach_energy_reference",
                     "leach_energy_factor_cap"):
            setattr(self, name, float(getattr(self, name)))

        if self.width <= 0 or self.height <= 0:
            raise ConfigurationError(
                f"Field dimensions must be positive, got {self.width}x{self.height}")
        if self.num_sensors < 0:
            raise ConfigurationError("num_sensors must be non-negative")
        if self.initial_energy < 0:
            raise ConfigurationError("initial_energy must be non-negative")
        if self.num_clusters < 1:
            raise ConfigurationError("num_clusters must be at least 1")
        if self.clustering_interval < 1:
            raise ConfigurationError("clustering_interval must be at least 1")

        for name in ("energy_tx_elec", "energy_rx_elec", "distance_factor",
                     "energy_to_satellite", "idle_drain", "sleep_drain"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be non-negative")

        for variable in VARIABLES:
            low, high = self.variable_range(variable)
            if low >= high:
                raise ConfigurationError(
                    f"Range for {variable} is empty: min={low}, max={high}")

        if not 0.0 <= self.information_threshold <= 1.0:
            raise ConfigurationError("information_threshold must lie in [0, 1]")
        if self.nearest_neighbors < 1:
            raise ConfigurationError("nearest_neighbors must be at least 1")
        if self.entropy_bins < 2:
            raise ConfigurationError("entropy_bins must be at least 2")
        if self.history_window < 1:
            raise ConfigurationError("history_window must be at least 1")
        if self.estimation_neighbors < 1:
            raise ConfigurationError("estimation_neighbors must be at least 1")
        if self.max_rounds < 0:
            raise ConfigurationError("max_rounds must be non-negative")
        if self.kmeans_max_iterations < 1:
            raise ConfigurationError("kmeans_max_iterations must be at least 1")
        if self.kmeans_convergence_threshold < 0:
            raise ConfigurationError("kmeans_convergence_threshold must be non-negative")
        if self.leach_energy_reference <= 0 or self.leach_energy_factor_cap <= 0:
            raise ConfigurationError("LEACH energy reference and cap must be positive")
        if self.environment_drift_interval < 0:
            raise ConfigurationError("environment_drift_interval must be non-negative")

    def variable_range(self, variable: str) -> Tuple[float, float]:
        """Return (min, max) of one environmental variable."""
        if variable not in VARIABLES:
            raise ConfigurationError(f"Unknown environmental variable '{variable}'")
        return (float(getattr(self, f"min_{variable}")), float(getattr(self, f"max_{variable}")))

    def ranges(self) -> Tuple[Tuple[float, float], ...]:
        """Ranges of all variables in VARIABLES order."""
        return tuple(self.variable_range(v) for v in VARIABLES)

    @property
    def area_size(self) -> Tuple[float, float]:
        return (self.width, self.height)

    # ------------------------------------------------------------------
    # YAML helpers
    # ------------------------------------------------------------------
    @classmethod
    def from_yaml(cls, path) -> "SimulationConfig":
        """Load a configuration from a YAML file. Missing keys keep their defaults."""
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} does not contain a mapping")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> "SimulationConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {unknown}")
        return cls(**data)

    def to_yaml(self, path) -> None:
        """Save the config to YAML."""
        target = Path(path)
        if target.parent and not target.parent.exists():
            os.makedirs(target.parent, exist_ok=True)
        with open(target, "w", encoding="utf-8") as fh:
            yaml.safe_dump(asdict(self), fh, indent=DEFAULT_YAML_INDENT, sort_keys=False)

    def with_overrides(self, **overrides) -> "SimulationConfig":
        """Return a validated copy with some fields replaced."""
        data = asdict(self)
        data.update(overrides)
        return self.from_dict(data)

    def __str__(self) -> str:
        return (f"SimulationConfig(field={self.width:g}x{self.height:g}, "
                f"sensors={self.num_sensors}, clusters={self.num_clusters}, "
                f"interval={self.clustering_interval})")


def load_config(path: Optional[str] = None) -> SimulationConfig:
    """Defaults when no path is given, otherwise the YAML file at `path`."""
    if path is None:
        return SimulationConfig()
    return SimulationConfig.from_yaml(path)
