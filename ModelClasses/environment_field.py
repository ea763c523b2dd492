import numpy as np
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ConfigClass.config import SimulationConfig, VARIABLES
from ModelClasses.sensor_node import SensorNode


GRID_SIZE = 20

# fraction of each variable's range used by the temporal and noise terms,
# in VARIABLES order (temperature, salinity, pressure, ph)
TEMPORAL_FRACTION = np.array([0.04, 0.05, 0.03, 0.02])
NOISE_FRACTION = np.array([0.02, 0.02, 0.01, 0.01])
NOISE_WEIGHT = np.array([0.4, 0.5, 0.3, 0.2])


@dataclass(frozen=True)
class Reading:
    """One environmental sample of one sensor. Never mutated after creation."""

    sensor_id: int
    temperature: float
    salinity: float
    pressure: float
    ph: float

    def as_array(self) -> np.ndarray:
        return np.array([self.temperature, self.salinity, self.pressure, self.ph], dtype=float)

    @classmethod
    def from_array(cls, sensor_id: int, values: Sequence[float]) -> "Reading":
        return cls(int(sensor_id), *(float(v) for v in values))


@dataclass(frozen=True)
class NoiseGenerator:
    """Seeded oscillator: a product of sinusoids in x, y and time."""

    frequency: float
    amplitude: float
    seed: float

    def noise(self, x, y, t):
        f, s = self.frequency, self.seed
        value = (np.sin(x * f + s)
                 * np.cos(y * f + s * 1.5)
                 * np.sin(t * f * 0.1 + s * 2))
        return value * self.amplitude


DEFAULT_NOISE_GENERATORS: Tuple[NoiseGenerator, ...] = (
    NoiseGenerator(0.01, 1.0, 1234),
    NoiseGenerator(0.05, 0.5, 5678),
    NoiseGenerator(0.1, 0.25, 9012),
)


class EnvironmentField:
    """
    Synthetic marine field producing temperature, salinity, pressure and pH.

    A coarse GRID_SIZE x GRID_SIZE grid of base values is built once from
    smooth spatial functions (sinusoids of the normalised x coordinate plus a
    depth term in the normalised y coordinate). A query looks up the
    containing cell (nearest-cell, no interpolation), then adds a tidal and
    seasonal temporal term and three octaves of oscillator noise, and clamps
    each variable into its configured range.

    `regenerate()` is the only stochastic operation: it nudges about 5% of the
    cells toward a freshly sampled base value. Its generator is seeded from
    `config.environment_seed`, so two fields built from the same config drift
    identically.
    """

    def __init__(
        self,
        config: 'SimulationConfig',
        noise_generators: Optional[Sequence[NoiseGenerator]] = None,
        update_probability: float = 0.05,
        blend_factor: float = 0.1,
        seed: Optional[int] = None,
    ):
        self.config = config
        self.noise_generators = tuple(noise_generators or DEFAULT_NOISE_GENERATORS)
        self.update_probability = update_probability
        self.blend_factor = blend_factor
        self.step_x = config.width / GRID_SIZE
        self.step_y = config.height / GRID_SIZE

        ranges = np.array(config.ranges(), dtype=float)
        self._low = ranges[:, 0]
        self._high = ranges[:, 1]
        self._span = self._high - self._low

        self._rng = np.random.default_rng(config.environment_seed if seed is None else seed)
        self.regenerations = 0

        # base values per cell: (GRID_SIZE + 1, GRID_SIZE + 1, 4) so that the
        # far edges of the field resolve to a cell of their own
        gx, gy = np.meshgrid(np.arange(GRID_SIZE + 1), np.arange(GRID_SIZE + 1), indexing="ij")
        self._grid = self._base_values(gx * self.step_x, gy * self.step_y)

    # ------------------------------------------------------------------
    # Spatial base
    # ------------------------------------------------------------------
    @staticmethod
    def _lerp(low, high, t):
        return low + (high - low) * np.clip(t, 0.0, 1.0)

    def _base_values(self, x, y) -> np.ndarray:
        """Base value of every variable at (x, y); works on scalars and arrays."""
        nx = np.asarray(x, dtype=float) / self.config.width
        depth = np.asarray(y, dtype=float) / self.config.height

        t_temperature = 0.8 - 0.6 * depth + 0.2 * np.sin(nx * np.pi * 4)
        t_salinity = 0.3 + 0.4 * np.sin(nx * np.pi * 2) + 0.3 * depth
        t_pressure = 0.2 + 0.8 * depth + 0.1 * np.cos(nx * np.pi * 3)
        t_ph = 0.5 + 0.3 * np.cos(nx * np.pi * 2) - 0.2 * depth

        stacked = np.stack([t_temperature, t_salinity, t_pressure, t_ph], axis=-1)
        return self._lerp(self._low, self._high, stacked)

    def _cell_values(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        gx = np.floor(x / self.step_x).astype(int)
        gy = np.floor(y / self.step_y).astype(int)
        inside = (gx >= 0) & (gx <= GRID_SIZE) & (gy >= 0) & (gy <= GRID_SIZE)

        values = np.empty((len(x), len(VARIABLES)))
        if np.any(inside):
            values[inside] = self._grid[gx[inside], gy[inside]]
        if not np.all(inside):
            # outside the grid: fall back to the analytic base value
            values[~inside] = self._base_values(x[~inside], y[~inside])
        return values

    # ------------------------------------------------------------------
    # Time-varying terms
    # ------------------------------------------------------------------
    def _temporal_variation(self, x: np.ndarray, y: np.ndarray, round_: int) -> np.ndarray:
        time = round_ * 0.01
        nx = x / self.config.width
        ny = y / self.config.height

        tidal = np.sin(time * 2 * np.pi) * 0.5
        seasonal = np.cos(time * 0.1 * np.pi) * 0.3

        scale = self._span * TEMPORAL_FRACTION
        temperature = scale[0] * (seasonal + tidal * 0.3) * np.ones_like(x)
        salinity = scale[1] * (tidal + seasonal * ny)
        pressure = scale[2] * (tidal * 1.5 + seasonal * 0.5) * np.ones_like(x)
        ph = scale[3] * (seasonal * 0.7 + tidal * nx)
        return np.stack([temperature, salinity, pressure, ph], axis=-1)

    def _noise(self, x: np.ndarray, y: np.ndarray, round_: int) -> np.ndarray:
        total = np.zeros_like(x, dtype=float)
        for generator in self.noise_generators:
            total = total + generator.noise(x, y, round_)
        return total[:, None] * NOISE_WEIGHT * (self._span * NOISE_FRACTION)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def values_at(self, xs, ys, round_: int) -> np.ndarray:
        """(n, 4) array of clamped, 2-decimal readings in VARIABLES order."""
        x = np.atleast_1d(np.asarray(xs, dtype=float))
        y = np.atleast_1d(np.asarray(ys, dtype=float))
        raw = (self._cell_values(x, y)
               + self._temporal_variation(x, y, round_)
               + self._noise(x, y, round_))
        return np.round(np.clip(raw, self._low, self._high), 2)

    def reading(self, x: float, y: float, round_: int, sensor_id: int = -1) -> Reading:
        """Sample the field at one position and round."""
        return Reading.from_array(sensor_id, self.values_at([x], [y], round_)[0])

    def readings_for(self, sensors: List['SensorNode'], round_: int) -> Tuple[Reading, ...]:
        """Readings for every sensor (dead or alive), in the given order."""
        if not sensors:
            return ()
        values = self.values_at([s.x for s in sensors], [s.y for s in sensors], round_)
        return tuple(Reading.from_array(s.id, row) for s, row in zip(sensors, values))

    # ------------------------------------------------------------------
    # Drift
    # ------------------------------------------------------------------
    def regenerate(self) -> int:
        """
        Blend roughly `update_probability` of the cells toward a fresh base
        value sampled at a random point inside the cell. Returns the number of
        cells touched.
        """
        shape = self._grid.shape[:2]
        chosen = self._rng.random(shape) < self.update_probability
        jitter = self._rng.random(shape + (2,))

        gx, gy = np.nonzero(chosen)
        if len(gx) > 0:
            fresh = self._base_values((gx + jitter[gx, gy, 0]) * self.step_x,
                                      (gy + jitter[gx, gy, 1]) * self.step_y)
            current = self._grid[gx, gy]
            self._grid[gx, gy] = current + (fresh - current) * self.blend_factor
        self.regenerations += 1
        return int(len(gx))

    def heatmap(self, variable: str, resolution: int = 50) -> np.ndarray:
        """
        (resolution, resolution) grid of base values of one variable, rows
        indexed by y and columns by x.
        """
        idx = VARIABLES.index(variable)
        xs = (np.arange(resolution) / resolution) * self.config.width
        ys = (np.arange(resolution) / resolution) * self.config.height
        gx, gy = np.meshgrid(xs, ys)
        values = self._cell_values(gx.ravel(), gy.ravel())[:, idx]
        return values.reshape(resolution, resolution)

    def base_grid(self) -> Dict[str, np.ndarray]:
        """Copy of the per-cell base values, keyed by variable."""
        return {v: self._grid[:, :, i].copy() for i, v in enumerate(VARIABLES)}
