from collections.abc import Iterable


class ConnectionMapping:
    """Tracks which live client connections subscribe to which key.

    Keys are typically user, organization or project ids. Each mutation is a
    single dictionary or set operation, so concurrent callers need no
    external locking. ``None`` keys are ignored.

    Examples:
        >>> connections = ConnectionMapping()
        >>> connections.add("org-1", "conn-a")
        >>> sorted(connections.get_connections("org-1"))
        ['conn-a']
    """

    def __init__(self) -> None:
        self._connections: dict[str, set[str]] = {}

    def add(self, key: str | None, connection_id: str) -> None:
        if key is None:
            return
        self._connections.setdefault(key, set()).add(connection_id)

    def remove(self, key: str | None, connection_id: str) -> None:
        if key is None:
            return
        connections = self._connections.get(key)
        if connections is None:
            return
        connections.discard(connection_id)
        if not connections:
            self._connections.pop(key, None)

    def get_connections(self, key: str | None) -> frozenset[str]:
        """Return a snapshot of the connections subscribed to ``key``."""
        if key is None:
            return frozenset()
        return frozenset(self._connections.get(key, ()))

    def get_all_connections(self, keys: Iterable[str | None]) -> frozenset[str]:
        result: set[str] = set()
        for key in keys:
            result.update(self.get_connections(key))
        return frozenset(result)

    def __len__(self) -> int:
        return len(self._connections)
