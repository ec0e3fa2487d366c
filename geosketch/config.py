"""Configuration helpers for the element graph and the intersection solver."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field


@dataclass
class IntersectionSolveOptions:
    """Knobs for the ray/distance endpoint solver."""

    max_iterations: int = 60
    max_bracket_doublings: int = 60
    tolerance_km: float = 1e-6
    exact_hit_km: float = 1e-6
    min_bracket_m: float = 0.01
    initial_step_m: float = 1000.0
    max_offset_m: float = 40_000_000.0


@dataclass
class GraphConfig:
    """Tolerances used by :class:`~geosketch.graph.ElementGraph`."""

    # degrees, compared per axis
    match_tolerance: float = 1e-4
    legacy_match_tolerance: float = 1e-6
    intersection: IntersectionSolveOptions = field(default_factory=IntersectionSolveOptions)


_GRAPH_CONFIG = GraphConfig()


def get_default_graph_config() -> GraphConfig:
    return copy.deepcopy(_GRAPH_CONFIG)


def set_default_graph_config(config: GraphConfig) -> None:
    global _GRAPH_CONFIG
    _GRAPH_CONFIG = copy.deepcopy(config)


__all__ = [
    "GraphConfig",
    "IntersectionSolveOptions",
    "get_default_graph_config",
    "set_default_graph_config",
]
