"""Entropy-gated sleep scheduling."""
import numpy as np

from ConfigClass.config import SimulationConfig
from ModelClasses.cluster import Cluster, StrategyKind
from ModelClasses.cluster_manager import ClusterManager
from ModelClasses.environment_field import EnvironmentField, Reading
from ModelClasses.info_kmeans_clustering import (SleepSchedule, conditional_entropy, discretize,
                                                 guardrail_minimum, has_minimum_history,
                                                 info_kmeans_clusters, information_content,
                                                 observe_readings, partition_by_information,
                                                 sleepers_to_wake)
from ModelClasses.sensor_node import SensorNode, deploy_sensors


def _observe_rounds(sensors, cfg, rounds, state=None):
    field = EnvironmentField(cfg)
    state = state if state is not None else SleepSchedule()
    alive_ids = [s.id for s in sensors if s.is_alive()]
    for r in range(rounds):
        state = observe_readings(state, field.readings_for(sensors, r), alive_ids, cfg.history_window)
    return state


def test_guardrail_minimum():
    assert guardrail_minimum(100) == 30
    assert guardrail_minimum(10) == 3
    assert guardrail_minimum(11) == 4
    assert guardrail_minimum(2) == 2
    assert guardrail_minimum(0) == 0


def test_discretize_edges():
    bins = discretize(np.array([0.0, 5.0, 10.0, 12.0]), 0.0, 10.0, 10)
    assert list(bins) == [0, 4, 9, 9]


def test_conditional_entropy_cases():
    x = np.array([0, 1, 0, 1])
    # identical sequences: fully predictable
    assert np.isclose(conditional_entropy(x, [x.copy()], 10), 0.0)
    # constant neighbour tells nothing about an alternating target
    assert np.isclose(conditional_entropy(x, [np.array([5, 5, 5, 5])], 10), 1.0)
    # constant target is never surprising
    assert np.isclose(conditional_entropy(np.zeros(4, dtype=int), [x], 10), 0.0)


def test_information_content_without_neighbors_is_one():
    cfg = SimulationConfig()
    history = (Reading(0, 10.0, 33.0, 1500.0, 8.0),) * 3
    assert information_content(history, [], cfg) == 1.0


def test_observe_readings_trims_to_window():
    cfg = SimulationConfig(num_sensors=5, history_window=4)
    sensors = deploy_sensors(cfg, seed=0)
    state = _observe_rounds(sensors, cfg, 7)
    assert set(state.history_lengths().values()) == {4}
    assert state.history[0][-1].sensor_id == 0


def test_minimum_history_needs_three_samples():
    cfg = SimulationConfig(num_sensors=10)
    sensors = deploy_sensors(cfg, seed=0)
    assert not has_minimum_history(SleepSchedule())
    assert not has_minimum_history(_observe_rounds(sensors, cfg, 2))
    assert has_minimum_history(_observe_rounds(sensors, cfg, 3))


def test_partition_wakes_highest_scorers():
    nodes = [SensorNode(i, float(i), 0.0) for i in range(10)]
    scores = {i: i / 100.0 for i in range(10)}
    active, sleeping = partition_by_information(nodes, scores, threshold=0.5)
    assert sorted(n.id for n in active) == [7, 8, 9]
    assert len(sleeping) == 7


def test_all_awake_before_history():
    cfg = SimulationConfig(num_sensors=30)
    sensors = deploy_sensors(cfg, seed=5)
    state = _observe_rounds(sensors, cfg, 1)
    clusters, schedule = info_kmeans_clusters(sensors, cfg, 0, state)
    assert schedule.asleep == frozenset()
    assert not any(s.is_asleep for s in sensors)
    assert sum(len(c.members) for c in clusters) == 30


def test_threshold_one_leaves_only_guardrail_awake():
    cfg = SimulationConfig(num_sensors=40, information_threshold=1.0)
    sensors = deploy_sensors(cfg, seed=9)
    state = _observe_rounds(sensors, cfg, 3)
    clusters, schedule = info_kmeans_clusters(sensors, cfg, 2, state)

    awake = [s for s in sensors if not s.is_asleep]
    assert len(awake) == guardrail_minimum(40)
    assert schedule.asleep == frozenset(s.id for s in sensors if s.is_asleep)

    # sleepers are attached to clusters, never lead one
    sleeping_ids = sorted(sid for c in clusters for sid in c.sleeping_ids)
    assert sleeping_ids == sorted(schedule.asleep)
    assert all(c.head_id not in schedule.asleep for c in clusters)


def test_sleepers_to_wake_tops_up_to_guardrail():
    sleepers = [SensorNode(i, float(i), 0.0, is_asleep=True) for i in range(8)]
    scores = {i: i / 10.0 for i in range(8)}
    woken = sleepers_to_wake(sleepers, active_count=1, alive_count=9, scores=scores)
    assert [n.id for n in woken] == [7, 6]
    assert sleepers_to_wake(sleepers, active_count=3, alive_count=9, scores=scores) == []


def test_carry_forward_wakes_sleepers_when_awake_sensors_die():
    nodes = [SensorNode(i, 10.0 * i, 0.0) for i in range(10)]
    for node in nodes[3:]:
        node.is_asleep = True
    cluster = Cluster.from_nodes(0, nodes[0], nodes[:3], sleeping=nodes[3:])

    manager = ClusterManager(StrategyKind.INFO_KMEANS, SimulationConfig())
    manager.sleep_schedule = SleepSchedule(scores={i: i / 100.0 for i in range(10)},
                                           asleep=frozenset(range(3, 10)))
    nodes[2].energy = 0.0

    clusters = manager.carry_forward([cluster], nodes)

    # 9 alive need 3 awake: the best-scoring sleeper joins the two survivors
    assert not nodes[9].is_asleep
    assert clusters[0].member_ids == (0, 1, 9)
    assert 9 not in clusters[0].sleeping_ids
    assert manager.sleep_schedule.asleep == frozenset(range(3, 9))
    assert sum(1 for n in nodes if n.is_reporting()) == guardrail_minimum(9)
