"""
=============================================================================
ROUTE TABLE
=============================================================================

Maps a route (the exact request path, e.g. "/css/site.css" or "/docs/")
to the ContentBlob holding that file.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       TWO PHASES, ONE WRITER                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   SCAN PHASE (main thread only)      SERVE PHASE (all workers)       │
    │   ─────────────────────────────      ──────────────────────────      │
    │   RouteTable(capacity=n)             lookup(path)  -> entry | None   │
    │   insert(path, blob)  x n                                            │
    │   freeze()  ───────────────────────► insert() now raises             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Lookups are exact and case-sensitive: no normalization, no decoding,
no "closest match". A dict gives O(1) lookups and grows safely, so the
capacity is a logical bound (sized from the walk's file count) rather
than a storage limit.

Once frozen there is no writer, so workers read the table concurrently
without any locking.
=============================================================================
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from ..errors import DuplicateRouteError, RouteTableFrozenError, RouteTableFullError
from .blob import ContentBlob


@dataclass(frozen=True)
class RouteEntry:
    """A route path and the blob it serves."""

    path: str
    blob: ContentBlob


class RouteTable:
    """
    Fixed-capacity, append-only, freezable route mapping.

    Usage:
        table = RouteTable(capacity=2)
        table.insert("/", ContentBlob.from_bytes(b"<h1>hi</h1>"))
        table.insert("/404.html", ContentBlob.from_bytes(b"Not Found"))
        table.freeze()

        entry = table.lookup("/")
    """

    def __init__(self, capacity: int):
        if capacity < 0:
            raise ValueError(f"capacity must be >= 0, got {capacity}")
        self._capacity = capacity
        self._entries: Dict[str, RouteEntry] = {}
        self._frozen = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def frozen(self) -> bool:
        return self._frozen

    def insert(self, path: str, blob: ContentBlob) -> RouteEntry:
        """
        Add a route.

        Raises:
            RouteTableFrozenError: After freeze().
            DuplicateRouteError: If `path` is already routed.
            RouteTableFullError: If the table holds `capacity` entries.
        """
        if self._frozen:
            raise RouteTableFrozenError(f"Route table is frozen; cannot insert {path}", path=path)
        if path in self._entries:
            raise DuplicateRouteError(f"Duplicate route: {path}", path=path)
        if len(self._entries) >= self._capacity:
            raise RouteTableFullError(
                f"Route table is full ({self._capacity} entries); cannot insert {path}",
                path=path,
            )

        blob.seal()
        entry = RouteEntry(path=path, blob=blob)
        self._entries[path] = entry
        return entry

    def lookup(self, path: str) -> Optional[RouteEntry]:
        return self._entries.get(path)

    def freeze(self) -> "RouteTable":
        """Make the table read-only for the serving phase. Returns self."""
        self._frozen = True
        return self

    def routes(self) -> List[str]:
        """All routes, sorted."""
        return sorted(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __iter__(self) -> Iterator[RouteEntry]:
        return iter(self._entries.values())

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "open"
        return f"RouteTable({len(self)}/{self._capacity}, {state})"
