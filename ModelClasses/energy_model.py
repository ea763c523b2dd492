from dataclasses import dataclass
from typing import Dict, Iterable, List, Union

from ConfigClass.config import SimulationConfig
from ModelClasses.cluster import Cluster, StrategyKind, index_by_id
from ModelClasses.sensor_node import SensorNode


@dataclass
class EnergyReport:
    """What one round of cost application did to the network."""

    consumed: float = 0.0
    saved_by_sleep: float = 0.0
    charged_clusters: int = 0


@dataclass
class EnergyModel:
    """
    Abstract per-round energy model.

    Per charged cluster (head alive when the cluster is reached):
      head    : rx_elec per awake non-head member + fixed satellite uplink
      member  : tx_elec + distance_factor * d(member, head)^2
      sleeper : sleep_drain (entropy-gated strategy only)
    Then, once per round, every alive and awake sensor pays idle_drain.
    Energy is clamped at 0 and never recovers.
    """

    tx_elec: float = 0.02
    rx_elec: float = 0.01
    distance_factor: float = 0.00005
    uplink: float = 5.0
    idle_drain: float = 0.01
    sleep_drain: float = 0.001

    def __post_init__(self):
        for name in ("tx_elec", "rx_elec", "distance_factor", "uplink", "idle_drain", "sleep_drain"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")

    @classmethod
    def from_config(cls, config: 'SimulationConfig') -> "EnergyModel":
        return cls(
            tx_elec=config.energy_tx_elec,
            rx_elec=config.energy_rx_elec,
            distance_factor=config.distance_factor,
            uplink=config.energy_to_satellite,
            idle_drain=config.idle_drain,
            sleep_drain=config.sleep_drain,
        )

    def tx_energy(self, distance: float) -> float:
        """Member-to-head transmission cost."""
        if distance < 0:
            raise ValueError("Distance must be non-negative")
        return self.tx_elec + self.distance_factor * distance ** 2

    def head_energy(self, n_members: int) -> float:
        """Aggregation and uplink cost of a head serving `n_members` awake members."""
        return n_members * self.rx_elec + self.uplink

    def apply_round_cost(
        self,
        clusters: Iterable['Cluster'],
        sensors: Union[List['SensorNode'], Dict[int, 'SensorNode']],
        strategy_kind: 'StrategyKind',
    ) -> EnergyReport:
        """Charge one round of costs to `sensors` in place."""
        nodes = sensors if isinstance(sensors, dict) else index_by_id(sensors)
        charge_sleepers = StrategyKind.parse(strategy_kind) is StrategyKind.INFO_KMEANS
        report = EnergyReport()

        for cluster in clusters:
            head = nodes.get(cluster.head_id)
            if head is None or not head.is_alive():
                continue
            report.charged_clusters += 1

            members = [nodes[mid] for mid in cluster.non_head_ids()
                       if mid in nodes and nodes[mid].is_reporting()]
            report.consumed += head.consume(self.head_energy(len(members)))

            for member in members:
                if not member.is_alive():
                    continue
                report.consumed += member.consume(self.tx_energy(member.distance_to(head)))

            if not charge_sleepers:
                continue
            for sid in cluster.sleeping_ids:
                sleeper = nodes.get(sid)
                if sleeper is None or not sleeper.is_alive() or not sleeper.is_asleep:
                    continue
                report.consumed += sleeper.consume(self.sleep_drain)
                awake_cost = self.tx_energy(sleeper.distance_to(head)) + self.rx_elec + self.idle_drain
                report.saved_by_sleep += max(0.0, awake_cost - self.sleep_drain)

        for node in nodes.values():
            if node.is_reporting():
                report.consumed += node.consume(self.idle_drain)

        return report
