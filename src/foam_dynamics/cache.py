"""
Topology Cache
==============

Derived dual structures keyed by topology fingerprint:

    edge_keys, edge_to_face, face_to_edge   topology only
    half_edge_graph, link_graph             depend on centers; rebuilt
                                            when the centers of the foam
                                            passed to graphs() differ from
                                            the ones they were built from

Entries are created by ensure() / prime() and removed by invalidate()
when a retriangulation retires a fingerprint. A fingerprint is a cheap
change-detection hash, so an entry is only reused for a foam with the
same counts and leading edge keys.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from foam_core.builders.foam import Foam
from foam_core.operators.adjacency import HalfEdgeGraph, build_half_edge_graph
from foam_core.operators.edge_graph import EdgeLinkGraph, build_edge_link_graph
from foam_core.spec.structures import EdgeKey, FaceKey


@dataclass
class CacheEntry:
    fingerprint: int
    edge_keys: List[EdgeKey]
    edge_to_face: Dict[EdgeKey, FaceKey] = field(repr=False)
    face_to_edge: Dict[FaceKey, EdgeKey] = field(repr=False)
    half_edge_graph: Optional[HalfEdgeGraph] = field(default=None, repr=False)
    link_graph: Optional[EdgeLinkGraph] = field(default=None, repr=False)
    graph_centers: Optional[np.ndarray] = field(default=None, repr=False)

    @property
    def has_graphs(self) -> bool:
        return self.half_edge_graph is not None and self.link_graph is not None

    def graphs(self, foam: Foam):
        """(half_edge_graph, link_graph) for the centers of `foam`."""
        if not (self.has_graphs and self.graph_centers is not None
                and self.graph_centers.shape == foam.centers.shape
                and np.array_equal(self.graph_centers, foam.centers)):
            self.half_edge_graph = build_half_edge_graph(foam)
            self.link_graph = build_edge_link_graph(foam)
            self.graph_centers = foam.centers.copy()
        return self.half_edge_graph, self.link_graph


class TopologyCache:
    """Fingerprint → CacheEntry."""

    def __init__(self):
        self._entries: Dict[int, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self):
        return len(self._entries)

    def __contains__(self, fingerprint) -> bool:
        return int(fingerprint) in self._entries

    def get(self, fingerprint: int) -> Optional[CacheEntry]:
        return self._entries.get(int(fingerprint))

    def ensure(self, foam: Foam) -> CacheEntry:
        """Entry for foam.fingerprint, creating the topology part if missing."""
        entry = self._entries.get(foam.fingerprint)
        if entry is not None:
            self.hits += 1
            return entry
        self.misses += 1
        entry = CacheEntry(
            fingerprint=foam.fingerprint,
            edge_keys=foam.edge_keys,
            edge_to_face=foam.edge_to_face,
            face_to_edge=foam.face_to_edge,
        )
        self._entries[foam.fingerprint] = entry
        return entry

    def prime(self, foam: Foam) -> CacheEntry:
        """ensure() and build the graphs for the current centers."""
        entry = self.ensure(foam)
        entry.graphs(foam)
        return entry

    def invalidate(self, fingerprint: int) -> bool:
        """Drop one entry; True if it existed."""
        return self._entries.pop(int(fingerprint), None) is not None

    def clear(self):
        self._entries.clear()

    def fingerprints(self) -> List[int]:
        return list(self._entries)
