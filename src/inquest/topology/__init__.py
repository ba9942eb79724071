"""Location topology and suspect placement helpers."""

from .resolver import (
    LocationGraph,
    SuspectProfile,
    TimelineEntry,
    build_location_graph,
    build_placement_index,
    extract_locations,
    iter_suspects,
    narrative_title,
    parse_narrative,
    suspect_names,
    suspects_at,
)

__all__ = [
    "LocationGraph",
    "SuspectProfile",
    "TimelineEntry",
    "build_location_graph",
    "build_placement_index",
    "extract_locations",
    "iter_suspects",
    "narrative_title",
    "parse_narrative",
    "suspect_names",
    "suspects_at",
]
