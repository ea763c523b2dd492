import math
from typing import List, NamedTuple, Sequence

import numpy as np
from scipy.spatial.distance import cdist

from ConfigClass.config import SimulationConfig
from ModelClasses.cluster import Cluster
from ModelClasses.sensor_node import SensorNode, alive_sensors, positions_of


class LloydResult(NamedTuple):
    assignments: np.ndarray
    centroids: np.ndarray
    iterations: int
    converged: bool


def grid_centroids(k: int, width: float, height: float) -> np.ndarray:
    """
    Deterministic seeding: k points on the smallest cols x rows grid holding k,
    filled row by row, spaced evenly inside the field.
    """
    if k <= 0:
        return np.zeros((0, 2))
    cols = math.ceil(math.sqrt(k))
    rows = math.ceil(k / cols)
    step_x = width / (cols + 1)
    step_y = height / (rows + 1)

    points = []
    for row in range(1, rows + 1):
        for col in range(1, cols + 1):
            if len(points) == k:
                break
            points.append((col * step_x, row * step_y))
    return np.array(points, dtype=float)


def assign_to_nearest(positions: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Index of the nearest centroid for every position (first one on ties)."""
    return np.argmin(cdist(positions, centroids), axis=1)


def update_centroids(positions: np.ndarray, assignments: np.ndarray, previous: np.ndarray) -> np.ndarray:
    """Member means; a centroid that lost all its members stays where it was."""
    centroids = previous.copy()
    for i in range(len(previous)):
        mask = assignments == i
        if np.any(mask):
            centroids[i] = positions[mask].mean(axis=0)
    return centroids


def lloyd(
    positions: np.ndarray,
    centroids: np.ndarray,
    max_iterations: int = 100,
    threshold: float = 1.0,
) -> LloydResult:
    """
    Lloyd's iteration. Stops once no centroid moves further than `threshold`
    in one step, or after `max_iterations` steps.
    """
    centroids = np.asarray(centroids, dtype=float)
    assignments = np.zeros(len(positions), dtype=int)
    converged = False
    iteration = 0

    while not converged and iteration < max_iterations:
        assignments = assign_to_nearest(positions, centroids)
        new_centroids = update_centroids(positions, assignments, centroids)
        movement = np.linalg.norm(new_centroids - centroids, axis=1)
        converged = bool(np.all(movement <= threshold))
        centroids = new_centroids
        iteration += 1

    return LloydResult(assignments, centroids, iteration, converged)


def clusters_from_assignments(
    sensors: Sequence['SensorNode'],
    assignments: np.ndarray,
    centroids: np.ndarray,
) -> List[Cluster]:
    """
    Group sensors by assignment. Each head is the member nearest to the final
    centroid; empty groups are skipped and ids are consecutive.
    """
    clusters: List[Cluster] = []
    for i, centroid in enumerate(centroids):
        members = [s for s, a in zip(sensors, assignments) if a == i]
        if not members:
            continue
        head = min(members, key=lambda s: s.distance_to((centroid[0], centroid[1])))
        clusters.append(Cluster.from_nodes(len(clusters), head, members))
    return clusters


def effective_k(requested: int, alive_count: int) -> int:
    """Cluster count actually used: the requested count clamped to the alive population."""
    return max(0, min(int(requested), int(alive_count)))


def kmeans_clusters(sensors: Sequence['SensorNode'], config: 'SimulationConfig') -> List[Cluster]:
    """Centroid-based partition of the alive sensors into min(num_clusters, alive) clusters."""
    alive = alive_sensors(list(sensors))
    if not alive:
        return []
    if len(alive) == 1:
        return [Cluster.from_nodes(0, alive[0], alive)]

    k = effective_k(config.num_clusters, len(alive))
    result = lloyd(
        positions_of(alive),
        grid_centroids(k, config.width, config.height),
        max_iterations=config.kmeans_max_iterations,
        threshold=config.kmeans_convergence_threshold,
    )
    return clusters_from_assignments(alive, result.assignments, result.centroids)
