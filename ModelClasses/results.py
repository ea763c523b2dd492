from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from ModelClasses.cluster import RoundFrame, StrategyKind, STRATEGY_ORDER
from ModelClasses.sensor_node import SensorNode


@dataclass(frozen=True)
class RoundStats:
    """Derived statistics for one (strategy, round) pair."""

    round: int
    alive_sensors: int
    total_energy: float
    average_energy: float
    clusters: int
    last_clustering_round: int
    sleeping_nodes: Optional[int] = None
    active_nodes: Optional[int] = None


@dataclass
class StrategyRun:
    """
    History of one strategy: frames indexed by round, lifetime, and the
    per-round reconstruction error (possibly extended past the last frame).
    """

    kind: StrategyKind
    frames: List[RoundFrame] = field(default_factory=list)
    network_lifetime: int = 0
    total_rounds: int = 0
    errors: List[float] = field(default_factory=list)
    average_active_nodes: Optional[float] = None
    energy_savings: Optional[float] = None

    def last_clustering_round(self, round_: int) -> int:
        for r in range(min(round_, len(self.frames) - 1), -1, -1):
            if self.frames[r].reclustered:
                return r
        return 0

    def to_dataframe(self) -> pd.DataFrame:
        """One row per round of the error horizon; frame columns are 0 past the lifetime."""
        length = max(len(self.frames), len(self.errors))
        errors = list(self.errors) + [0.0] * (length - len(self.errors))
        cumulative = np.cumsum(errors)
        rows = []
        for r in range(length):
            frame = self.frames[r] if r < len(self.frames) else None
            rows.append({
                "round": r,
                "alive": frame.alive_count if frame else 0,
                "total_energy": frame.total_energy if frame else 0.0,
                "clusters": len(frame.clusters) if frame else 0,
                "sleeping": frame.sleeping_count if frame else 0,
                "reclustered": frame.reclustered if frame else False,
                "error": errors[r],
                "cumulative_error": float(cumulative[r]),
            })
        return pd.DataFrame(rows, columns=["round", "alive", "total_energy", "clusters", "sleeping",
                                           "reclustered", "error", "cumulative_error"])


@dataclass
class SimulationRun:
    """The shared initial layout and one StrategyRun per strategy."""

    sensors: List[SensorNode]
    runs: Dict[StrategyKind, StrategyRun]

    def __getitem__(self, kind) -> StrategyRun:
        return self.runs[StrategyKind.parse(kind)]

    @property
    def horizon(self) -> int:
        return max((run.total_rounds for run in self.runs.values()), default=0)

    def lifetimes(self) -> Dict[str, int]:
        return {kind.value: run.network_lifetime for kind, run in self.runs.items()}

    def best_strategy(self) -> Optional[StrategyKind]:
        """Longest lifetime; ties go to the lower cumulative error."""
        if not self.runs:
            return None
        return min(
            self.runs,
            key=lambda k: (-self.runs[k].network_lifetime, float(np.sum(self.runs[k].errors)),
                           STRATEGY_ORDER.index(k) if k in STRATEGY_ORDER else len(STRATEGY_ORDER)),
        )

    def stats_for_round(self, kind, round_: int) -> RoundStats:
        """
        Alive count, energy totals, cluster count and sleep split of one
        strategy at one round. Past the recorded history every count is 0.
        """
        if round_ < 0:
            raise ValueError(f"Round must be non-negative, got {round_}")
        kind = StrategyKind.parse(kind)
        run = self[kind]
        tracks_sleep = kind is StrategyKind.INFO_KMEANS

        if round_ >= len(run.frames):
            return RoundStats(round_, 0, 0.0, 0.0, 0, 0,
                              0 if tracks_sleep else None, 0 if tracks_sleep else None)

        frame = run.frames[round_]
        alive = frame.alive_count
        total = frame.total_energy
        return RoundStats(
            round=round_,
            alive_sensors=alive,
            total_energy=total,
            average_energy=total / alive if alive > 0 else 0.0,
            clusters=len(frame.clusters),
            last_clustering_round=run.last_clustering_round(round_),
            sleeping_nodes=frame.sleeping_count if tracks_sleep else None,
            active_nodes=frame.active_count if tracks_sleep else None,
        )

    def comparison_dataframe(self) -> pd.DataFrame:
        """
        Side-by-side per-round comparison over the common horizon: alive
        count, total energy, cluster count, error and cumulative error of
        every strategy.
        """
        length = max([self.horizon] + [len(run.errors) for run in self.runs.values()])
        data = {"round": np.arange(length)}
        for kind, run in self.runs.items():
            df = run.to_dataframe().set_index("round").reindex(range(length))
            prefix = kind.value.replace("-", "_")
            data[f"{prefix}_alive"] = df["alive"].fillna(0).astype(int).to_numpy()
            data[f"{prefix}_energy"] = df["total_energy"].fillna(0.0).astype(float).to_numpy()
            data[f"{prefix}_clusters"] = df["clusters"].fillna(0).astype(int).to_numpy()
            data[f"{prefix}_error"] = df["error"].fillna(0.0).astype(float).to_numpy()
            data[f"{prefix}_cum_error"] = np.cumsum(data[f"{prefix}_error"])
        return pd.DataFrame(data)

    def summary(self) -> pd.DataFrame:
        rows = []
        for kind, run in self.runs.items():
            rows.append({
                "strategy": kind.value,
                "lifetime": run.network_lifetime,
                "total_rounds": run.total_rounds,
                "cumulative_error": float(np.sum(run.errors)),
                "average_active_nodes": run.average_active_nodes,
                "energy_savings": run.energy_savings,
            })
        return pd.DataFrame(rows)
