"""
Entropy-gated sleep scheduling on top of centroid clustering (Info-KMeans).

Each sensor keeps a bounded window of its recent readings. Once most sensors
have at least MIN_HISTORY samples, every alive sensor is scored by how
unpredictable its discretised history is given the histories of its nearest
spatial neighbours (temporal conditional entropy H(target | neighbour),
averaged over the four variables and normalised by log2(bins)). Sensors
scoring below the information threshold go to sleep; a guardrail keeps at
least max(3, 30% of alive) sensors awake. The awake set is clustered with
the centroid algorithm and each sleeper is attached to the cluster whose
head is spatially nearest.
"""

import math
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Iterable, List, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

from ConfigClass.config import SimulationConfig, VARIABLES
from ModelClasses.cluster import Cluster, MemberSnapshot
from ModelClasses.environment_field import Reading
from ModelClasses.kmeans_clustering import kmeans_clusters
from ModelClasses.sensor_node import SensorNode, alive_sensors, positions_of


MIN_HISTORY = 3
MIN_NEIGHBOR_HISTORY = 2
HISTORY_COVERAGE = 0.8
GUARDRAIL_MIN_ACTIVE = 3
GUARDRAIL_FRACTION = 0.3


@dataclass(frozen=True)
class SleepSchedule:
    """
    Cross-round state of the entropy-gated strategy: the reading window per
    tracked sensor, the last information scores and the current sleepers.
    """

    history: Dict[int, Tuple[Reading, ...]] = field(default_factory=dict)
    scores: Dict[int, float] = field(default_factory=dict)
    asleep: FrozenSet[int] = frozenset()

    def history_lengths(self) -> Dict[int, int]:
        return {sid: len(h) for sid, h in self.history.items()}


def observe_readings(
    state: SleepSchedule,
    readings: Iterable['Reading'],
    alive_ids: Iterable[int],
    window: int,
) -> SleepSchedule:
    """Append this round's readings of the alive sensors, keeping the last `window` per sensor."""
    alive = set(alive_ids)
    history = {sid: h for sid, h in state.history.items() if sid in alive}
    for reading in readings:
        if reading.sensor_id not in alive:
            continue
        window_readings = history.get(reading.sensor_id, ()) + (reading,)
        history[reading.sensor_id] = window_readings[-window:]
    return replace(state, history=history)


def has_minimum_history(state: SleepSchedule) -> bool:
    """At least HISTORY_COVERAGE of the tracked sensors hold MIN_HISTORY samples."""
    if not state.history:
        return False
    enough = sum(1 for h in state.history.values() if len(h) >= MIN_HISTORY)
    return enough >= HISTORY_COVERAGE * len(state.history)


def discretize(values: np.ndarray, low: float, high: float, bins: int) -> np.ndarray:
    normalized = np.clip((np.asarray(values, dtype=float) - low) / (high - low), 0.0, 1.0)
    return np.clip(np.floor(normalized * (bins - 1)).astype(int), 0, bins - 1)


def conditional_entropy(target: np.ndarray, neighbors: Sequence[np.ndarray], bins: int) -> float:
    """
    H(X | Y) in bits from joint counts of (target, neighbour) bin pairs pooled
    over all neighbours. Sequences are aligned on their most recent samples.
    """
    joint = np.zeros(bins * bins, dtype=float)
    for neighbor in neighbors:
        m = min(len(target), len(neighbor))
        if m == 0:
            continue
        pairs = target[-m:] * bins + neighbor[-m:]
        joint += np.bincount(pairs, minlength=bins * bins)

    total = joint.sum()
    if total == 0:
        return 0.0
    joint = joint.reshape(bins, bins)  # [target_bin, neighbor_bin]
    neighbor_counts = joint.sum(axis=0)

    nz = joint > 0
    p_joint = joint[nz] / total
    p_conditional = joint[nz] / np.broadcast_to(neighbor_counts, joint.shape)[nz]
    return float(-np.sum(p_joint * np.log2(p_conditional)))


def information_content(
    target: Sequence['Reading'],
    neighbors: Sequence[Sequence['Reading']],
    config: 'SimulationConfig',
) -> float:
    """Normalised conditional entropy in [0, 1], averaged over the four variables."""
    if not neighbors or len(target) < MIN_NEIGHBOR_HISTORY:
        return 1.0

    bins = config.entropy_bins
    target_values = np.array([r.as_array() for r in target])
    neighbor_values = [np.array([r.as_array() for r in h]) for h in neighbors]

    entropies = []
    for i, variable in enumerate(VARIABLES):
        low, high = config.variable_range(variable)
        x = discretize(target_values[:, i], low, high, bins)
        ys = [discretize(v[:, i], low, high, bins) for v in neighbor_values]
        entropies.append(conditional_entropy(x, ys, bins))

    normalized = float(np.mean(entropies)) / math.log2(bins)
    return max(0.0, min(1.0, normalized))


def information_scores(
    alive: Sequence['SensorNode'],
    state: SleepSchedule,
    config: 'SimulationConfig',
) -> Dict[int, float]:
    """
    Score every alive sensor against its `nearest_neighbors` closest alive
    neighbours that hold at least two samples. Sensors lacking history or
    neighbours score 1.0 (treated as informative).
    """
    scores = {n.id: 1.0 for n in alive}
    candidates = [n for n in alive if len(state.history.get(n.id, ())) >= MIN_NEIGHBOR_HISTORY]
    if len(candidates) < 2:
        return scores

    tree = cKDTree(positions_of(candidates))
    k = min(config.nearest_neighbors + 1, len(candidates))

    for node in alive:
        history = state.history.get(node.id, ())
        if len(history) < MIN_NEIGHBOR_HISTORY:
            continue
        _, idx = tree.query([node.x, node.y], k=k)
        idx = np.atleast_1d(idx)
        neighbors = [candidates[j] for j in idx if candidates[j].id != node.id]
        neighbors = neighbors[:config.nearest_neighbors]
        if len(neighbors) < MIN_NEIGHBOR_HISTORY:
            continue
        scores[node.id] = information_content(
            history, [state.history[n.id] for n in neighbors], config)
    return scores


def guardrail_minimum(alive_count: int) -> int:
    """Smallest awake population allowed: max(3, 30% of alive), never above alive."""
    required = max(GUARDRAIL_MIN_ACTIVE, int(math.ceil(GUARDRAIL_FRACTION * alive_count - 1e-9)))
    return min(alive_count, required)


def sleepers_to_wake(
    sleeping: Sequence['SensorNode'],
    active_count: int,
    alive_count: int,
    scores: Dict[int, float],
) -> List['SensorNode']:
    """Highest-scoring sleepers needed to lift `active_count` back to the guardrail minimum."""
    missing = guardrail_minimum(alive_count) - active_count
    if missing <= 0:
        return []
    ranked = sorted(sleeping, key=lambda n: (-scores.get(n.id, 0.0), n.id))
    return ranked[:missing]


def partition_by_information(
    alive: Sequence['SensorNode'],
    scores: Dict[int, float],
    threshold: float,
) -> Tuple[List['SensorNode'], List['SensorNode']]:
    """Split into (active, sleeping); wake the best sleepers if the guardrail is breached."""
    active = [n for n in alive if scores.get(n.id, 1.0) >= threshold]
    sleeping = [n for n in alive if scores.get(n.id, 1.0) < threshold]

    woken_ids = {n.id for n in sleepers_to_wake(sleeping, len(active), len(alive), scores)}
    if woken_ids:
        active = [n for n in alive if scores.get(n.id, 1.0) >= threshold or n.id in woken_ids]
        sleeping = [n for n in sleeping if n.id not in woken_ids]
    return active, sleeping


def attach_sleepers(clusters: List[Cluster], sleeping: Sequence['SensorNode']) -> List[Cluster]:
    """Each sleeper joins the cluster with the spatially nearest head; centroids are not revisited."""
    if not clusters or not sleeping:
        return clusters
    heads = {}
    for cluster in clusters:
        head = next(m for m in cluster.members if m.id == cluster.head_id)
        heads[cluster.id] = (head.x, head.y)

    extra: Dict[int, List[MemberSnapshot]] = {c.id: list(c.sleeping_members) for c in clusters}
    for node in sleeping:
        nearest = min(clusters, key=lambda c: node.distance_to(heads[c.id]))
        extra[nearest.id].append(MemberSnapshot.of(node))
    return [c.with_sleeping(extra[c.id]) for c in clusters]


def info_kmeans_clusters(
    sensors: Sequence['SensorNode'],
    config: 'SimulationConfig',
    round_: int,
    state: SleepSchedule = None,
) -> Tuple[List[Cluster], SleepSchedule]:
    """
    Decide sleepers, cluster the awake set and attach sleepers. Sets
    `is_asleep` on the given nodes and returns the clusters with the updated
    schedule. Readings must already have been folded into `state` with
    `observe_readings`.
    """
    state = state if state is not None else SleepSchedule()
    alive = alive_sensors(list(sensors))
    for node in sensors:
        node.is_asleep = False
    if not alive:
        return [], replace(state, scores={}, asleep=frozenset())

    scores: Dict[int, float] = {}
    active, sleeping = list(alive), []
    if has_minimum_history(state):
        scores = information_scores(alive, state, config)
        active, sleeping = partition_by_information(alive, scores, config.information_threshold)

    for node in sleeping:
        node.is_asleep = True

    clusters = attach_sleepers(kmeans_clusters(active, config), sleeping)
    return clusters, replace(state, scores=scores, asleep=frozenset(n.id for n in sleeping))
