from ModelClasses.cluster import RoundFrame, StrategyKind, STRATEGY_ORDER, index_by_id
from ModelClasses.cluster_manager import ClusterManager
from ModelClasses.energy_model import EnergyModel
from ModelClasses.environment_field import EnvironmentField
from ModelClasses.estimation import ReadingEstimator
from ModelClasses.reclustering_policy import ReclusteringPolicy
from ModelClasses.results import SimulationRun, StrategyRun
from ModelClasses.sensor_node import SensorNode, copy_sensors, deploy_sensors
from ConfigClass.config import SimulationConfig, load_config


import argparse
import numpy as np
import pandas as pd
from typing import List, Optional, Sequence


class StrategyRunner:
    """
    Runs one clustering strategy over its own copy of the sensor layout.

    Each round: readings for every sensor, topology (recomputed on the
    reclustering interval, carried forward otherwise), energy costs, then the
    reconstruction error of the sensors that did not report. The runner
    stops at the first round with no alive sensor or at the round budget.
    """

    def __init__(self, kind, config: SimulationConfig, layout: Sequence[SensorNode]):
        self.kind = StrategyKind.parse(kind)
        self.config = config

        self.sensors: List[SensorNode] = copy_sensors(list(layout))
        self.nodes = index_by_id(self.sensors)

        self.environment = EnvironmentField(config)
        self.energy_model = EnergyModel.from_config(config)
        self.cluster_manager = ClusterManager(self.kind, config)
        self.reclustering_policy = ReclusteringPolicy(config.clustering_interval)
        # neighbours are looked up over the original layout, alive or not
        self.estimator = ReadingEstimator(layout, self.environment, k=config.estimation_neighbors)

        self.result = StrategyRun(self.kind)
        self._lifetime: Optional[int] = None
        self._active_counts: List[int] = []
        self._energy_saved = 0.0

    def _drift(self, round_: int):
        interval = self.config.environment_drift_interval
        if interval > 0 and round_ > 0 and round_ % interval == 0:
            self.environment.regenerate()

    def _missing_ids(self) -> List[int]:
        return [s.id for s in self.sensors if not s.is_reporting()]

    def step(self, round_: int) -> bool:
        """Simulate one round. Returns False, without recording a frame, once the network is dead."""
        if not any(s.is_alive() for s in self.sensors):
            self._lifetime = round_
            return False

        self._drift(round_)
        readings = self.environment.readings_for(self.sensors, round_)
        self.cluster_manager.observe(readings, self.sensors)

        reclustered, _ = self.reclustering_policy.should_recluster(round_)
        if reclustered:
            clusters = self.cluster_manager.form_clusters(
                self.sensors, self.reclustering_policy.epoch(round_))
            self.reclustering_policy.update_after_recluster(round_)
        else:
            previous = self.result.frames[-1].clusters if self.result.frames else ()
            clusters = self.cluster_manager.carry_forward(previous, self.sensors)

        # who reports is decided by the topology, before costs can kill anyone
        alive_at_start = sum(1 for s in self.sensors if s.is_alive())
        reporting_ids = [s.id for s in self.sensors if s.is_reporting()]
        missing_ids = self._missing_ids()

        report = self.energy_model.apply_round_cost(clusters, self.nodes, self.kind)
        self._energy_saved += report.saved_by_sleep

        self.estimator.observe(readings, reporting_ids)
        error = self.estimator.round_error(readings, missing_ids, round_)

        frame = RoundFrame(
            round=round_,
            clusters=tuple(c.snapshot(self.nodes) for c in clusters),
            readings=readings,
            sleeping_ids=tuple(s.id for s in self.sensors if s.is_alive() and s.is_asleep),
            energies=tuple(s.energy for s in self.sensors),
            reclustered=reclustered,
            error=error,
            alive_at_start=alive_at_start,
            reporting_ids=tuple(reporting_ids),
        )
        self.result.frames.append(frame)
        self.result.errors.append(error)
        self._active_counts.append(len(reporting_ids))
        return True

    def run(self, max_rounds: int) -> StrategyRun:
        for r in range(max_rounds):
            if not self.step(r):
                break

        run = self.result
        run.total_rounds = len(run.frames)
        run.network_lifetime = self._lifetime if self._lifetime is not None else run.total_rounds
        if self.kind is StrategyKind.INFO_KMEANS:
            run.average_active_nodes = float(np.mean(self._active_counts)) if self._active_counts else 0.0
            run.energy_savings = self._energy_saved
        return run

    def extend_errors(self, horizon: int) -> int:
        """
        Keep scoring the (frozen) network past its last round so every
        strategy has an error series of length `horizon`. Returns the number of
        rounds added.
        """
        added = 0
        for r in range(len(self.result.errors), horizon):
            self._drift(r)
            truth = self.environment.readings_for(self.sensors, r)
            self.result.errors.append(self.estimator.round_error(truth, self._missing_ids(), r))
            added += 1
        return added


class Simulation:
    """
    Compares k-means, LEACH and information-aware k-means clustering on one
    shared random sensor deployment.

    Deployment is the only seeded random step; everything after it is
    deterministic, so two runs over the same layout and config agree round
    for round. Each strategy gets a private copy of the layout and its own
    environment field, and after all three have run the shorter error series
    are extended to the longest run so the curves can be compared.
    """

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        seed: Optional[int] = None,
        sensors: Optional[Sequence[SensorNode]] = None,
        verbose: bool = False,
    ):
        self.config = config if config is not None else SimulationConfig()
        self.seed = seed
        self.verbose = verbose

        if sensors is None:
            self.sensors = deploy_sensors(self.config, seed)
        else:
            self.sensors = copy_sensors(list(sensors))

        self.runners: List[StrategyRunner] = []
        self._log(f"[Info] Deployed {len(self.sensors)} sensors over "
                  f"{self.config.width:g}x{self.config.height:g} (seed={seed})")

    def _log(self, message: str):
        if self.verbose:
            print(message)

    def run(self, max_rounds: Optional[int] = None,
            strategies: Sequence = STRATEGY_ORDER) -> SimulationRun:
        rounds = self.config.max_rounds if max_rounds is None else int(max_rounds)
        if rounds < 0:
            raise ValueError(f"max_rounds must be non-negative, got {rounds}")

        self.runners = []
        for kind in strategies:
            runner = StrategyRunner(kind, self.config, self.sensors)
            run = runner.run(rounds)
            self.runners.append(runner)
            self._log(f"[Run] {runner.kind.value}: lifetime {run.network_lifetime} rounds, "
                      f"{runner.cluster_manager.formations} clusterings")

        horizon = max((r.result.total_rounds for r in self.runners), default=0)
        for runner in self.runners:
            added = runner.extend_errors(horizon)
            if added:
                self._log(f"[Info] Extended {runner.kind.value} error series by {added} rounds")

        return SimulationRun(
            sensors=copy_sensors(self.sensors),
            runs={runner.kind: runner.result for runner in self.runners},
        )

    def environment_heatmap(self, variable: str, resolution: int = 50) -> np.ndarray:
        """Base-value grid of one variable on a fresh (undrifted) field."""
        return EnvironmentField(self.config).heatmap(variable, resolution)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Compare clustering strategies on a simulated sensor field")
    parser.add_argument("--config", type=str, default=None, help="YAML configuration file")
    parser.add_argument("--rounds", type=int, default=None, help="Round budget per strategy")
    parser.add_argument("--seed", type=int, default=None, help="Deployment seed")
    parser.add_argument("--quiet", action="store_true", help="Only print the summary table")
    return parser.parse_args(argv)


def main(argv=None) -> SimulationRun:
    args = parse_args(argv)
    config = load_config(args.config)
    sim = Simulation(config, seed=args.seed, verbose=not args.quiet)
    result = sim.run(max_rounds=args.rounds)

    with pd.option_context("display.width", 120, "display.max_columns", None):
        print(result.summary().to_string(index=False))
    best = result.best_strategy()
    if best is not None:
        print(f"[Info] Longest-lived strategy: {best.value}")
    return result


if __name__ == "__main__":
    main()
