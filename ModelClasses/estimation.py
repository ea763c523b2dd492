import numpy as np
from typing import Dict, Iterable, List, Optional, Sequence

from scipy.spatial import cKDTree

from ConfigClass.config import VARIABLES
from ModelClasses.environment_field import EnvironmentField, Reading
from ModelClasses.sensor_node import SensorNode, positions_of


class ReadingEstimator:
    """
    Reconstructs readings of missing (dead or sleeping) sensors.

    A last-known-reading cache is kept per sensor and refreshed only from
    sensors that are alive and awake in a round. A missing sensor is
    estimated by inverse-distance weighting over its `k` nearest other
    sensors of the original layout that have a cached value,
    w = 1 / (d + eps). With no cached neighbour at all the environment field
    is queried directly as an oracle.
    """

    def __init__(
        self,
        layout: Sequence['SensorNode'],
        environment: 'EnvironmentField',
        k: int = 4,
        eps: float = 1e-6,
    ):
        if k < 1:
            raise ValueError("k must be at least 1")
        self.ids = [s.id for s in layout]
        self.index = {sid: i for i, sid in enumerate(self.ids)}
        self.positions = positions_of(list(layout))
        self.environment = environment
        self.k = int(k)
        self.eps = float(eps)

        self._cache = np.zeros((len(self.ids), len(VARIABLES)))
        self._has_cache = np.zeros(len(self.ids), dtype=bool)
        self._tree: Optional[cKDTree] = None
        self._tree_members = np.zeros(0, dtype=int)

    # ------------------------------------------------------------------
    # Cache maintenance
    # ------------------------------------------------------------------
    def observe(self, readings: Iterable['Reading'], reporting_ids: Iterable[int]) -> int:
        """Cache the readings of sensors that reported this round. Returns how many were cached."""
        reporting = set(reporting_ids)
        updated = 0
        for reading in readings:
            if reading.sensor_id not in reporting or reading.sensor_id not in self.index:
                continue
            i = self.index[reading.sensor_id]
            self._cache[i] = reading.as_array()
            if not self._has_cache[i]:
                self._has_cache[i] = True
                self._tree = None
            updated += 1
        return updated

    def last_known(self, sensor_id: int) -> Optional[Reading]:
        i = self.index[sensor_id]
        if not self._has_cache[i]:
            return None
        return Reading.from_array(sensor_id, self._cache[i])

    @property
    def cached_count(self) -> int:
        return int(self._has_cache.sum())

    def _cached_tree(self) -> Optional[cKDTree]:
        if self._tree is None and self._has_cache.any():
            self._tree_members = np.flatnonzero(self._has_cache)
            self._tree = cKDTree(self.positions[self._tree_members])
        return self._tree

    # ------------------------------------------------------------------
    # Estimation
    # ------------------------------------------------------------------
    def _estimate_index(self, i: int, round_: int) -> np.ndarray:
        tree = self._cached_tree()
        n_cached = len(self._tree_members) if tree is not None else 0
        others = n_cached - (1 if self._has_cache[i] else 0)
        if others <= 0:
            x, y = self.positions[i]
            return self.environment.values_at([x], [y], round_)[0]

        query_k = min(self.k + 1, n_cached)
        distances, idx = tree.query(self.positions[i], k=query_k)
        distances = np.atleast_1d(distances)
        members = self._tree_members[np.atleast_1d(idx)]

        keep = members != i
        distances = distances[keep][:self.k]
        members = members[keep][:self.k]

        weights = 1.0 / (distances + self.eps)
        return weights @ self._cache[members] / weights.sum()

    def estimate(self, sensor_id: int, round_: int) -> Reading:
        return Reading.from_array(sensor_id, self._estimate_index(self.index[sensor_id], round_))

    def round_error(self, truth: Sequence['Reading'], missing_ids: Iterable[int], round_: int) -> float:
        """
        Mean absolute error over the four variables, averaged over the missing
        sensors. 0.0 when nothing is missing.
        """
        truth_by_id: Dict[int, Reading] = {r.sensor_id: r for r in truth}
        errors: List[float] = []
        for sid in missing_ids:
            if sid not in self.index or sid not in truth_by_id:
                continue
            estimate = self._estimate_index(self.index[sid], round_)
            errors.append(float(np.mean(np.abs(estimate - truth_by_id[sid].as_array()))))
        if not errors:
            return 0.0
        return float(np.mean(errors))
