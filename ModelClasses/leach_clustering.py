import math
from dataclasses import dataclass, field, replace
from typing import Dict, List, Sequence, Tuple

from ConfigClass.config import SimulationConfig
from ModelClasses.cluster import Cluster
from ModelClasses.sensor_node import SensorNode, alive_sensors


@dataclass(frozen=True)
class HeadRecord:
    was_head: bool = False
    last_head_round: int = -1


@dataclass(frozen=True)
class LeachState:
    """
    Cross-round rotation state of the LEACH strategy. Returned alongside the
    clusters of every call; the caller hands it back on the next call.
    """

    records: Dict[int, HeadRecord] = field(default_factory=dict)
    probability: float = 0.1
    rounds_per_cycle: int = 10

    def parameters(self) -> Dict[str, float]:
        return {"probability": self.probability, "rounds_per_cycle": self.rounds_per_cycle}

    def cycle_start(self, round_: int) -> int:
        return round_ - (round_ % self.rounds_per_cycle)

    def headed_this_cycle(self, sensor_id: int, round_: int) -> bool:
        record = self.records.get(sensor_id)
        if record is None or not record.was_head:
            return False
        return record.last_head_round >= self.cycle_start(round_)


def head_probability(desired_heads: int, alive_count: int) -> Tuple[float, int]:
    """Selection probability p = desired / alive (capped at 1) and cycle length ceil(1/p)."""
    if alive_count <= 0 or desired_heads <= 0:
        return 1.0, 1
    p = min(1.0, desired_heads / alive_count)
    return p, int(math.ceil(1.0 / p - 1e-12))


def eligibility(
    node: 'SensorNode',
    round_: int,
    state: LeachState,
    config: 'SimulationConfig',
) -> float:
    """
    LEACH threshold T(n) = p / (1 - p * (r mod 1/p)), scaled by an energy
    factor min(cap, E / E_ref), capped at 1. Zero for nodes that already
    served as head in the current cycle.
    """
    if state.headed_this_cycle(node.id, round_):
        return 0.0
    p = state.probability
    cycle_round = round_ % state.rounds_per_cycle
    denominator = 1.0 - p * cycle_round
    base = p / denominator if denominator > 0 else 1.0
    energy_factor = min(config.leach_energy_factor_cap, node.energy / config.leach_energy_reference)
    return min(1.0, base * energy_factor)


def _track(state: LeachState, alive: Sequence['SensorNode'], round_: int) -> Dict[int, HeadRecord]:
    """Records for the alive population; dead nodes are forgotten, and flags reset on a new cycle."""
    records: Dict[int, HeadRecord] = {}
    new_cycle = round_ % state.rounds_per_cycle == 0
    for node in alive:
        record = state.records.get(node.id, HeadRecord())
        if new_cycle and record.last_head_round < round_:
            record = HeadRecord()
        records[node.id] = record
    return records


def select_heads(
    alive: Sequence['SensorNode'],
    round_: int,
    desired: int,
    state: LeachState,
    config: 'SimulationConfig',
) -> List['SensorNode']:
    """
    Rank by eligibility (ties within 1e-3 broken by higher energy, then id)
    and take the top `desired` with positive eligibility. When nobody is
    eligible the highest-energy node is forced into headship; the fallback
    never tops up to `desired`, so late-cycle rounds may field fewer heads.
    """
    scored = [(eligibility(n, round_, state, config), n) for n in alive]
    scored.sort(key=lambda item: (-math.floor(item[0] * 1000.0), -item[1].energy, item[1].id))

    heads = [node for score, node in scored[:desired] if score > 0]
    if not heads and alive:
        heads = [max(alive, key=lambda n: (n.energy, -n.id))]
    return heads


def form_clusters(alive: Sequence['SensorNode'], heads: Sequence['SensorNode']) -> List[Cluster]:
    """Every non-head joins its nearest head; empty clusters are dropped."""
    head_ids = {h.id for h in heads}
    groups: List[List['SensorNode']] = [[h] for h in heads]
    for node in alive:
        if node.id in head_ids:
            continue
        nearest = min(range(len(heads)), key=lambda i: node.distance_to(heads[i]))
        groups[nearest].append(node)

    clusters = []
    for head, members in zip(heads, groups):
        if members:
            clusters.append(Cluster.from_nodes(len(clusters), head, members))
    return clusters


def leach_clusters(
    sensors: Sequence['SensorNode'],
    config: 'SimulationConfig',
    round_: int,
    state: LeachState = None,
) -> Tuple[List[Cluster], LeachState]:
    """
    One LEACH round. `round_` is the rotation round (the reclustering epoch).
    Returns the clusters and the updated rotation state.
    """
    state = state if state is not None else LeachState()
    alive = alive_sensors(list(sensors))
    if not alive:
        return [], replace(state, records={})

    desired = min(config.num_clusters, len(alive))
    probability, cycle = head_probability(desired, len(alive))
    state = replace(state, probability=probability, rounds_per_cycle=cycle)
    state = replace(state, records=_track(state, alive, round_))

    heads = select_heads(alive, round_, desired, state, config)

    records = dict(state.records)
    for head in heads:
        records[head.id] = HeadRecord(was_head=True, last_head_round=round_)
    state = replace(state, records=records)

    return form_clusters(alive, heads), state
