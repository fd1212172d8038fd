"""Great-circle distances and the entity proximity graph.

The proximity graph is an undirected networkx Graph whose nodes are
entity ids and whose edges join entities within ``max_distance_km`` of
each other.  Each edge carries its ``distance_km``.

Building the graph uses a latitude sweep: locations are sorted by
latitude and each one is only compared against the band of neighbours
whose latitude difference could still be within range.  One degree of
latitude is never shorter than ~110.5 km, so the band is a safe bound.
"""

from __future__ import annotations

import logging
from typing import Iterable

import networkx as nx
import numpy as np

from cascade_forecast.domain.event import EntityLocation

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
_MIN_KM_PER_DEGREE_LAT = 110.5


def haversine_km(lat1, lon1, lat2, lon2):
    """Haversine distance in kilometers.  Accepts scalars or numpy arrays."""
    p = np.pi / 180.0
    dlat = (np.asarray(lat2) - lat1) * p
    dlon = (np.asarray(lon2) - lon1) * p
    a = np.sin(dlat / 2) ** 2 + np.cos(lat1 * p) * np.cos(np.asarray(lat2) * p) * np.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))


def build_proximity_graph(
    locations: Iterable[EntityLocation],
    max_distance_km: float,
) -> nx.Graph:
    """Undirected graph joining entities no further apart than *max_distance_km*.

    Duplicate entity ids keep their first location.  Every located entity
    becomes a node even when it has no neighbours.
    """
    unique: dict[str, EntityLocation] = {}
    for loc in locations:
        unique.setdefault(loc.entity_id, loc)

    graph = nx.Graph()
    graph.add_nodes_from(unique)
    if len(unique) < 2 or max_distance_km < 0:
        return graph

    ordered = sorted(unique.values(), key=lambda loc: (loc.latitude, loc.entity_id))
    lats = np.array([loc.latitude for loc in ordered])
    lons = np.array([loc.longitude for loc in ordered])
    band = max_distance_km / _MIN_KM_PER_DEGREE_LAT

    for i, origin in enumerate(ordered):
        stop = int(np.searchsorted(lats, lats[i] + band, side="right"))
        if stop <= i + 1:
            continue
        distances = haversine_km(lats[i], lons[i], lats[i + 1:stop], lons[i + 1:stop])
        for offset, distance in enumerate(np.atleast_1d(distances)):
            if distance <= max_distance_km:
                neighbour = ordered[i + 1 + offset]
                graph.add_edge(origin.entity_id, neighbour.entity_id, distance_km=float(distance))

    logger.debug(
        "Proximity graph: %d entities, %d edges within %.2f km",
        graph.number_of_nodes(), graph.number_of_edges(), max_distance_km,
    )
    return graph


def edge_distance(graph: nx.Graph, a: str, b: str) -> float | None:
    """Distance between two adjacent entities, or None if not adjacent."""
    if a == b or not graph.has_edge(a, b):
        return None
    return graph.edges[a, b]["distance_km"]
