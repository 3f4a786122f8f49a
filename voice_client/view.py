"""
Console rendering: transcript (most recent first) and the trips table.
"""

import sys
from collections import deque
from typing import Any, Deque, Dict, List, Optional, TextIO

# (header, wire field) in display order
TRIP_COLUMNS = [
    ("Cliente", "cliente"),
    ("Autista", "autista"),
    ("Destinazione", "destinazione"),
    ("Tipo", "tipo_viaggio"),
    ("Data", "data"),
]


def format_trips_table(trips: List[Dict[str, Any]]) -> str:
    """Plain-text table; missing cells render as '-'."""
    rows = [[header for header, _ in TRIP_COLUMNS]]
    for trip in trips:
        rows.append([str(trip.get(key) or "-") for _, key in TRIP_COLUMNS])

    widths = [max(len(row[i]) for row in rows) for i in range(len(TRIP_COLUMNS))]
    lines = ["  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip() for row in rows]
    lines.insert(1, "  ".join("-" * w for w in widths))
    return "\n".join(lines)


class ConsoleView:
    """Holds what the browser page would show and echoes changes to a stream."""

    def __init__(self, *, max_entries: int = 200, out: Optional[TextIO] = None):
        self.transcript: Deque[str] = deque(maxlen=max_entries)
        self.trips: List[Dict[str, Any]] = []
        self._out = out or sys.stdout

    def log(self, message: str) -> None:
        self.transcript.appendleft(message)
        print(message, file=self._out, flush=True)

    def update_trips(self, trips: List[Dict[str, Any]]) -> None:
        """Replace the rendered trips with the received snapshot."""
        self.trips = list(trips)
        print(format_trips_table(self.trips), file=self._out, flush=True)
