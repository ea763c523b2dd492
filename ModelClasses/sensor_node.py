from typing import List, Optional, Tuple, Union
import copy
import math

import numpy as np

from ConfigClass.config import SimulationConfig


class SensorNode:

    def __init__(
        self,
        node_id: int,
        x: float,
        y: float,
        energy: float = 100.0,
        is_asleep: bool = False,
    ):
        """
        A stationary sensor. Position is fixed for the node's lifetime, energy
        only ever decreases and is clamped at 0, after which the node is dead
        for good. `is_asleep` is only meaningful while the node is alive.
        """
        self.id = int(node_id)
        self.x = float(x)
        self.y = float(y)
        self.energy = max(0.0, float(energy))
        self.is_asleep = bool(is_asleep)

    def is_alive(self) -> bool:
        return self.energy > 0

    def is_reporting(self) -> bool:
        """Alive and awake: the node delivers a real measurement this round."""
        return self.is_alive() and not self.is_asleep

    def distance_to(self, other: Union['SensorNode', Tuple[float, float]]) -> float:
        """Compute Euclidean distance to another node or point."""
        if isinstance(other, SensorNode):
            ox, oy = other.x, other.y
        else:
            ox, oy = other
        return math.hypot(self.x - ox, self.y - oy)

    def consume(self, amount: float) -> float:
        """Drain `amount` of energy, clamping at 0. Returns the energy actually spent."""
        if amount <= 0 or self.energy <= 0:
            return 0.0
        spent = min(self.energy, amount)
        self.energy = max(0.0, self.energy - amount)
        if self.energy <= 0:
            self.is_asleep = False
        return spent

    def __repr__(self):
        sleep_str = ", asleep" if self.is_asleep and self.is_alive() else ""
        return f"SensorNode(id={self.id}, pos=({self.x:.2f},{self.y:.2f}), E={self.energy:.4f}{sleep_str})"


def deploy_sensors(config: 'SimulationConfig', seed: Optional[int] = None) -> List[SensorNode]:
    """
    Place `config.num_sensors` nodes uniformly at random over the field, all at
    full energy. This is the only random step of a simulation.
    """
    rng = np.random.default_rng(seed)
    xs = rng.random(config.num_sensors) * config.width
    ys = rng.random(config.num_sensors) * config.height
    return [
        SensorNode(i, x=float(xs[i]), y=float(ys[i]), energy=config.initial_energy)
        for i in range(config.num_sensors)
    ]


def copy_sensors(sensors: List[SensorNode]) -> List[SensorNode]:
    """Independent working copy of a layout."""
    return copy.deepcopy(sensors)


def alive_sensors(sensors: List[SensorNode]) -> List[SensorNode]:
    return [s for s in sensors if s.is_alive()]


def positions_of(sensors: List[SensorNode]) -> np.ndarray:
    """(n, 2) array of positions, in the given order."""
    if not sensors:
        return np.zeros((0, 2))
    return np.array([[s.x, s.y] for s in sensors], dtype=float)
