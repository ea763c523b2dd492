from dataclasses import replace
from typing import Dict, List, Sequence

import numpy as np

from ConfigClass.config import SimulationConfig
from ModelClasses.cluster import Cluster, MemberSnapshot, StrategyKind, index_by_id
from ModelClasses.environment_field import Reading
from ModelClasses.info_kmeans_clustering import (SleepSchedule, info_kmeans_clusters, observe_readings,
                                                 sleepers_to_wake)
from ModelClasses.kmeans_clustering import kmeans_clusters
from ModelClasses.leach_clustering import LeachState, leach_clusters
from ModelClasses.sensor_node import SensorNode


class ClusterManager:
    """
    Forms clusters for one strategy run.

    The strategy is a tag (`StrategyKind`) dispatched in `form_clusters`; the
    cross-round state the rotating-head and entropy-gated strategies need is
    held here as explicit values (`leach_state`, `sleep_schedule`) and handed
    to the pure clustering functions on every call.
    """

    def __init__(self, kind, config: 'SimulationConfig'):
        self.kind = StrategyKind.parse(kind)
        self.config = config

        self.leach_state = LeachState()
        self.sleep_schedule = SleepSchedule()

        self.clusters: List[Cluster] = []
        self.formations = 0

    def observe(self, readings: Sequence['Reading'], sensors: Sequence['SensorNode']):
        """Feed one round of readings into the sleep scheduler's history window."""
        if self.kind is not StrategyKind.INFO_KMEANS:
            return
        alive_ids = [s.id for s in sensors if s.is_alive()]
        self.sleep_schedule = observe_readings(
            self.sleep_schedule, readings, alive_ids, self.config.history_window)

    def form_clusters(self, sensors: Sequence['SensorNode'], epoch: int) -> List[Cluster]:
        """
        Fresh topology for the alive sensors. `epoch` is the reclustering
        epoch index, used by the rotating-head strategy as its round counter.
        """
        alive = [s for s in sensors if s.is_alive()]

        if self.kind is StrategyKind.KMEANS:
            clusters = kmeans_clusters(alive, self.config)
        elif self.kind is StrategyKind.LEACH:
            clusters, self.leach_state = leach_clusters(alive, self.config, epoch, self.leach_state)
        else:
            clusters, self.sleep_schedule = info_kmeans_clusters(
                alive, self.config, epoch, self.sleep_schedule)

        self.clusters = clusters
        self.formations += 1
        return clusters

    def carry_forward(self, previous: Sequence[Cluster], sensors: Sequence['SensorNode']) -> List[Cluster]:
        """
        Reuse the previous topology: refresh every snapshot from the current
        sensor state, drop dead members and clusters whose head died. Sleeping
        sensors keep their cluster; a sleeper whose cluster was dropped moves
        to the nearest surviving head. For the entropy-gated strategy the
        best-scoring sleepers are woken whenever deaths have pushed the awake
        population below the guardrail minimum.
        """
        nodes = index_by_id(sensors)
        clusters = [c for c in (cluster.refreshed(nodes) for cluster in previous) if c is not None]

        placed = {m.id for c in clusters for m in c.sleeping_members}
        orphans = [nodes[m.id] for cluster in previous for m in cluster.sleeping_members
                   if m.id in nodes and nodes[m.id].is_alive() and m.id not in placed]
        if orphans and clusters:
            clusters = self._rehome(clusters, orphans, nodes)

        if self.kind is StrategyKind.INFO_KMEANS:
            clusters = self._restore_guardrail(clusters, sensors, nodes)

        self.clusters = clusters
        return clusters

    def _restore_guardrail(
        self,
        clusters: List[Cluster],
        sensors: Sequence['SensorNode'],
        nodes: Dict[int, 'SensorNode'],
    ) -> List[Cluster]:
        alive = [s for s in sensors if s.is_alive()]
        sleeping = [s for s in alive if s.is_asleep]
        woken = sleepers_to_wake(sleeping, len(alive) - len(sleeping), len(alive),
                                 self.sleep_schedule.scores)
        if not woken:
            return clusters

        woken_ids = {n.id for n in woken}
        for node in woken:
            node.is_asleep = False
        self.sleep_schedule = replace(self.sleep_schedule, asleep=self.sleep_schedule.asleep - woken_ids)
        return [c.with_woken(woken_ids, nodes) for c in clusters]

    @staticmethod
    def _rehome(clusters: List[Cluster], orphans: List['SensorNode'], nodes: Dict[int, 'SensorNode']) -> List[Cluster]:
        heads = np.array([[nodes[c.head_id].x, nodes[c.head_id].y] for c in clusters])
        extra: Dict[int, List[MemberSnapshot]] = {i: list(c.sleeping_members) for i, c in enumerate(clusters)}
        for node in orphans:
            nearest = int(np.argmin(np.hypot(heads[:, 0] - node.x, heads[:, 1] - node.y)))
            extra[nearest].append(MemberSnapshot.of(node))
        return [c.with_sleeping(extra[i]) for i, c in enumerate(clusters)]
