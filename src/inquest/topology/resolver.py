"""Location topology derived from a session's narrative payload."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import json
import logging
from typing import Any, Dict, List

import networkx as nx

logger = logging.getLogger(__name__)

PlacementIndex = Dict[str, List["SuspectProfile"]]


@dataclass(frozen=True)
class TimelineEntry:
    time: str | None
    location: str | None
    action: str | None


@dataclass(frozen=True)
class SuspectProfile:
    name: str
    timeline: tuple[TimelineEntry, ...] = ()
    personality: str | None = None
    background: str | None = None
    image_url: str | None = None

    @property
    def starting_location(self) -> str | None:
        if not self.timeline:
            return None
        return self.timeline[0].location


def _clean_str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def parse_narrative(payload: Any) -> dict[str, Any]:
    """Decode a narrative payload, returning an empty mapping when it is unusable."""
    if payload is None:
        return {}
    if isinstance(payload, Mapping):
        return dict(payload)
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8", errors="replace")
    if not isinstance(payload, str) or not payload.strip():
        return {}
    try:
        data = json.loads(payload)
    except ValueError:
        logger.debug("Narrative payload is not valid JSON; using empty topology")
        return {}
    if not isinstance(data, dict):
        logger.debug("Narrative payload decoded to %s, expected an object", type(data).__name__)
        return {}
    return data


def _timeline(raw: Any) -> tuple[TimelineEntry, ...]:
    if not isinstance(raw, list):
        return ()
    entries: list[TimelineEntry] = []
    for item in raw:
        if not isinstance(item, Mapping):
            # Keep the slot so index 0 stays the first entry as written.
            entries.append(TimelineEntry(time=None, location=None, action=None))
            continue
        entries.append(
            TimelineEntry(
                time=_clean_str(item.get("time")),
                location=_clean_str(item.get("location")),
                action=_clean_str(item.get("action")),
            )
        )
    return tuple(entries)


def iter_suspects(payload: Any) -> list[SuspectProfile]:
    data = parse_narrative(payload)
    raw_suspects = data.get("suspects")
    if not isinstance(raw_suspects, list):
        return []
    suspects: list[SuspectProfile] = []
    for raw in raw_suspects:
        if isinstance(raw, str):
            name = _clean_str(raw)
            if name:
                suspects.append(SuspectProfile(name=name))
            continue
        if not isinstance(raw, Mapping):
            continue
        name = _clean_str(raw.get("name"))
        if not name:
            continue
        suspects.append(
            SuspectProfile(
                name=name,
                timeline=_timeline(raw.get("timeline")),
                personality=_clean_str(raw.get("personality")),
                background=_clean_str(raw.get("background")),
                image_url=_clean_str(raw.get("imageUrl")),
            )
        )
    return suspects


def suspect_names(payload: Any) -> list[str]:
    return [suspect.name for suspect in iter_suspects(payload)]


def narrative_title(payload: Any, default: str | None = None) -> str | None:
    return _clean_str(parse_narrative(payload).get("title")) or default


def extract_locations(payload: Any) -> set[str]:
    """Every location named anywhere in any suspect's timeline."""
    locations: set[str] = set()
    for suspect in iter_suspects(payload):
        for entry in suspect.timeline:
            if entry.location:
                locations.add(entry.location)
    return locations


def build_placement_index(payload: Any) -> PlacementIndex:
    """Index each suspect under the location of their earliest timeline entry."""
    index: PlacementIndex = {}
    for suspect in iter_suspects(payload):
        location = suspect.starting_location
        if location is None:
            continue
        index.setdefault(location, []).append(suspect)
    return index


def suspects_at(index: PlacementIndex, location: str | None) -> list[SuspectProfile]:
    if not location:
        return []
    return list(index.get(location, []))


@dataclass
class LocationGraph:
    graph: nx.Graph = field(default_factory=nx.Graph)
    placement: PlacementIndex = field(default_factory=dict)

    @property
    def locations(self) -> set[str]:
        return set(self.graph.nodes)

    def neighbours(self, location: str | None) -> list[str]:
        if not location or location not in self.graph:
            return []
        return sorted(self.graph.neighbors(location))

    def suspects_at(self, location: str | None) -> list[SuspectProfile]:
        return suspects_at(self.placement, location)

    def suspect_names_at(self, location: str | None) -> list[str]:
        return [suspect.name for suspect in self.suspects_at(location)]


def build_location_graph(payload: Any) -> LocationGraph:
    """Locations as nodes, joined where a suspect's timeline passes between them."""
    data = parse_narrative(payload)
    graph = nx.Graph()
    for suspect in iter_suspects(data):
        previous: str | None = None
        for entry in suspect.timeline:
            if not entry.location:
                continue
            graph.add_node(entry.location)
            if previous is not None and previous != entry.location:
                if graph.has_edge(previous, entry.location):
                    graph.edges[previous, entry.location]["suspects"].add(suspect.name)
                else:
                    graph.add_edge(previous, entry.location, suspects={suspect.name})
            previous = entry.location
    return LocationGraph(graph=graph, placement=build_placement_index(data))
