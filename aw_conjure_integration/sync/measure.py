"""conjure.so measures - the remote series time entries are written into."""

from dataclasses import dataclass
from typing import Any

from .decode import DecodeError, field

__all__ = ["Measure", "TIME_ENTRY", "decode_measures"]

TIME_ENTRY = "time_entry"
KNOWN_MEASURE_TYPES = {"timestamp", TIME_ENTRY, "number", "workout_distance"}


@dataclass(frozen=True)
class Measure:
    """A time-entry measure on conjure.so."""

    id: str
    name: str
    position: float

    @classmethod
    def from_dict(cls, data: Any) -> "Measure":
        """Create Measure from a GraphQL ``measures`` node."""
        measure_id = field(data, "id")
        name = field(data, "name")
        position = field(data, "position")
        if not isinstance(measure_id, str) or not isinstance(name, str):
            raise DecodeError(f"Malformed measure: {data!r}")
        if isinstance(position, bool) or not isinstance(position, (int, float)):
            raise DecodeError(f"Malformed measure position: {data!r}")
        return cls(id=measure_id, name=name, position=float(position))

    def view(self) -> str:
        return f"{self.name} -- {self.id}"


def decode_measures(nodes: Any) -> list[Measure]:
    """Keep only time-entry measures, ordered by their position on conjure.so."""
    if not isinstance(nodes, list):
        raise DecodeError(f"Expected a list of measures, got: {nodes!r}")

    measures = []
    for node in nodes:
        measure_type = field(node, "measureType")
        if measure_type not in KNOWN_MEASURE_TYPES:
            raise DecodeError(f"Invalid MeasureType type: {measure_type!r}")
        if measure_type == TIME_ENTRY:
            measures.append(Measure.from_dict(node))
    return sorted(measures, key=lambda m: m.position)
