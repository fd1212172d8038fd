"""Tests for distance computation and the proximity graph."""

import numpy as np
import pytest

from cascade_forecast.core.geo import build_proximity_graph, edge_distance, haversine_km
from cascade_forecast.domain.event import EntityLocation

from tests.test_event import _LOC_A, _LOC_B, _LOC_FAR


def _loc(entity_id: str, point: tuple[float, float]) -> EntityLocation:
    return EntityLocation(entity_id=entity_id, latitude=point[0], longitude=point[1])


class TestHaversine:
    def test_zero_distance(self) -> None:
        assert haversine_km(10.0, 20.0, 10.0, 20.0) == pytest.approx(0.0)

    def test_known_offsets(self) -> None:
        assert haversine_km(*_LOC_A, *_LOC_B) == pytest.approx(2.0, abs=0.05)
        assert haversine_km(*_LOC_A, *_LOC_FAR) == pytest.approx(10.0, abs=0.1)

    def test_vectorised(self) -> None:
        d = haversine_km(0.0, 0.0, np.array([0.0, 1.0]), np.array([1.0, 0.0]))
        assert d.shape == (2,)
        assert d[0] == pytest.approx(d[1], rel=1e-3)


class TestProximityGraph:
    def test_edges_within_radius_only(self) -> None:
        graph = build_proximity_graph(
            [_loc("A", _LOC_A), _loc("B", _LOC_B), _loc("F", _LOC_FAR)], max_distance_km=5.0,
        )
        assert set(graph.nodes) == {"A", "B", "F"}
        assert graph.has_edge("A", "B")
        assert not graph.has_edge("A", "F")
        assert not graph.has_edge("B", "F")  # ~8 km apart

    def test_edge_distance(self) -> None:
        graph = build_proximity_graph([_loc("A", _LOC_A), _loc("B", _LOC_B)], 5.0)
        assert edge_distance(graph, "A", "B") == pytest.approx(2.0, abs=0.05)
        assert edge_distance(graph, "B", "A") == edge_distance(graph, "A", "B")
        assert edge_distance(graph, "A", "A") is None

    def test_duplicate_locations_keep_first(self) -> None:
        graph = build_proximity_graph(
            [_loc("A", _LOC_A), _loc("A", _LOC_FAR), _loc("B", _LOC_B)], 5.0,
        )
        assert graph.number_of_nodes() == 2
        assert graph.has_edge("A", "B")

    def test_single_location_has_no_edges(self) -> None:
        graph = build_proximity_graph([_loc("A", _LOC_A)], 5.0)
        assert graph.number_of_edges() == 0

    def test_matches_brute_force(self) -> None:
        rng = np.random.default_rng(7)
        lats = 47.5 + rng.random(40) * 0.2
        lons = -122.4 + rng.random(40) * 0.2
        locs = [EntityLocation(entity_id=f"E{i}", latitude=la, longitude=lo)
                for i, (la, lo) in enumerate(zip(lats, lons))]
        graph = build_proximity_graph(locs, 3.0)
        expected = {
            frozenset((a.entity_id, b.entity_id))
            for i, a in enumerate(locs) for b in locs[i + 1:]
            if haversine_km(a.latitude, a.longitude, b.latitude, b.longitude) <= 3.0
        }
        assert {frozenset(e) for e in graph.edges} == expected
