from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from ModelClasses.environment_field import Reading
from ModelClasses.sensor_node import SensorNode


class StrategyKind(str, Enum):
    """The three clustering behaviours compared by the simulator."""

    KMEANS = "kmeans"
    LEACH = "leach"
    INFO_KMEANS = "info-kmeans"

    @classmethod
    def parse(cls, value) -> "StrategyKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(
                f"Unknown strategy '{value}', expected one of {[k.value for k in cls]}") from None


STRATEGY_ORDER: Tuple[StrategyKind, ...] = (
    StrategyKind.KMEANS,
    StrategyKind.LEACH,
    StrategyKind.INFO_KMEANS,
)


@dataclass(frozen=True)
class MemberSnapshot:
    """State of one sensor as recorded in a cluster at a given round."""

    id: int
    x: float
    y: float
    energy: float
    is_asleep: bool = False

    @classmethod
    def of(cls, node: 'SensorNode') -> "MemberSnapshot":
        return cls(node.id, node.x, node.y, node.energy, node.is_asleep and node.is_alive())

    def is_alive(self) -> bool:
        return self.energy > 0


@dataclass(frozen=True)
class Cluster:
    """
    One head plus the active members it leads (head included, in formation
    order) and, for the entropy-gated strategy, the sleeping members assigned
    to it.
    """

    id: int
    head_id: int
    members: Tuple[MemberSnapshot, ...]
    sleeping_members: Tuple[MemberSnapshot, ...] = ()

    @classmethod
    def from_nodes(
        cls,
        cluster_id: int,
        head: 'SensorNode',
        members: Iterable['SensorNode'],
        sleeping: Iterable['SensorNode'] = (),
    ) -> "Cluster":
        return cls(
            id=int(cluster_id),
            head_id=head.id,
            members=tuple(MemberSnapshot.of(m) for m in members),
            sleeping_members=tuple(MemberSnapshot.of(m) for m in sleeping),
        )

    @property
    def member_ids(self) -> Tuple[int, ...]:
        return tuple(m.id for m in self.members)

    @property
    def sleeping_ids(self) -> Tuple[int, ...]:
        return tuple(m.id for m in self.sleeping_members)

    def non_head_ids(self) -> Tuple[int, ...]:
        return tuple(m.id for m in self.members if m.id != self.head_id)

    def with_sleeping(self, sleeping: Iterable[MemberSnapshot]) -> "Cluster":
        return Cluster(self.id, self.head_id, self.members, tuple(sleeping))

    def with_woken(self, woken_ids: Iterable[int], nodes: Dict[int, 'SensorNode']) -> "Cluster":
        """Move the given sleepers into the active members, re-read from `nodes`."""
        woken = set(woken_ids)
        moved = tuple(MemberSnapshot.of(nodes[m.id]) for m in self.sleeping_members if m.id in woken)
        if not moved:
            return self
        return Cluster(self.id, self.head_id, self.members + moved,
                       tuple(m for m in self.sleeping_members if m.id not in woken))

    def snapshot(self, nodes: Dict[int, 'SensorNode']) -> "Cluster":
        """Same membership with every snapshot re-read from `nodes`; nothing is dropped."""
        def snap(m: MemberSnapshot) -> MemberSnapshot:
            return MemberSnapshot.of(nodes[m.id]) if m.id in nodes else m
        return Cluster(self.id, self.head_id,
                       tuple(snap(m) for m in self.members),
                       tuple(snap(m) for m in self.sleeping_members))

    def refreshed(self, nodes: Dict[int, 'SensorNode']) -> Optional["Cluster"]:
        """
        Same topology with snapshots taken from the current node state. Dead
        members are dropped; returns None when the head itself has died.
        """
        head = nodes.get(self.head_id)
        if head is None or not head.is_alive():
            return None
        members = tuple(MemberSnapshot.of(nodes[m.id]) for m in self.members
                        if m.id in nodes and nodes[m.id].is_alive())
        sleeping = tuple(MemberSnapshot.of(nodes[m.id]) for m in self.sleeping_members
                         if m.id in nodes and nodes[m.id].is_alive())
        return Cluster(self.id, self.head_id, members, sleeping)


@dataclass(frozen=True)
class RoundFrame:
    """Everything recorded about one round of one strategy run."""

    round: int
    clusters: Tuple[Cluster, ...]
    readings: Tuple[Reading, ...]
    sleeping_ids: Tuple[int, ...] = ()
    # energy of every sensor of the layout after this round, in layout order
    energies: Tuple[float, ...] = ()
    reclustered: bool = False
    error: float = 0.0
    # sensors alive, and of those awake, once the round's topology was settled
    alive_at_start: int = 0
    reporting_ids: Tuple[int, ...] = ()

    @property
    def alive_count(self) -> int:
        return sum(1 for e in self.energies if e > 0)

    @property
    def total_energy(self) -> float:
        return float(sum(e for e in self.energies if e > 0))

    @property
    def sleeping_count(self) -> int:
        return len(self.sleeping_ids)

    @property
    def active_count(self) -> int:
        return self.alive_count - self.sleeping_count

    def head_ids(self) -> Tuple[int, ...]:
        return tuple(c.head_id for c in self.clusters)


def index_by_id(nodes: Iterable['SensorNode']) -> Dict[int, 'SensorNode']:
    """Sensor-id lookup table, built once per round."""
    return {n.id: n for n in nodes}
