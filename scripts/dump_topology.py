from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from inquest.topology import LocationGraph, build_location_graph, narrative_title, parse_narrative


def _load(payload: str) -> dict:
    data = parse_narrative(payload)
    # Accept a whole session snapshot as well as a bare narrative payload.
    if "generatedStoryJson" in data:
        data = parse_narrative(data["generatedStoryJson"])
    return data


def placement(graph: LocationGraph) -> dict[str, list[str]]:
    return {location: graph.suspect_names_at(location) for location in sorted(graph.locations)}


def dump_topology(payload: str) -> str:
    data = _load(payload)
    graph = build_location_graph(data)
    lines = [f"Title: {narrative_title(data, '(untitled)')}", "Locations:"]
    for location, names in placement(graph).items():
        here = ", ".join(names) or "-"
        near = ", ".join(graph.neighbours(location)) or "-"
        lines.append(f"- {location}: suspects [{here}], connects to [{near}]")
    if not graph.locations:
        lines.append("- (none)")
    return "\n".join(lines)


def main() -> None:
    parser = argparse.ArgumentParser(description="Show the locations and suspect placement of a case.")
    parser.add_argument("path", type=str, help="Narrative payload or session snapshot (JSON).")
    parser.add_argument("--json", action="store_true", help="Emit the placement index as JSON.")
    args = parser.parse_args()

    payload = Path(args.path).read_text(encoding="utf-8")
    if args.json:
        graph = build_location_graph(_load(payload))
        print(json.dumps(placement(graph), ensure_ascii=False, indent=2))
        return
    print(dump_topology(payload))


if __name__ == "__main__":
    main()
