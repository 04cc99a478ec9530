"""Host classification and the immutable node filter passed into each query."""

from collections.abc import Iterable, Mapping
from enum import Enum

from pydantic import BaseModel, ConfigDict

from syncthing_dashboard.registry import Instance


class HostClass(str, Enum):
    LOOPBACK = "loopback"
    PRIVATE = "private"
    REMOTE = "remote"


ALL_HOSTS = frozenset(HostClass)
LOCAL_HOSTS = frozenset({HostClass.LOOPBACK, HostClass.PRIVATE})

_KEYWORDS: dict[str, frozenset[HostClass]] = {
    "all": ALL_HOSTS,
    "local": LOCAL_HOSTS,
    "loopback": frozenset({HostClass.LOOPBACK}),
    "localhost": frozenset({HostClass.LOOPBACK}),
    "private": frozenset({HostClass.PRIVATE}),
    "remote": frozenset({HostClass.REMOTE}),
}


def classify_host(hostname: str) -> HostClass:
    """Loopback is ``localhost`` / ``127.0.0.1``; private is 192.168/16,
    10/8 and 172.16/12; everything else is remote."""
    host = hostname.strip().lower()
    if host in ("localhost", "127.0.0.1"):
        return HostClass.LOOPBACK
    if host.startswith(("192.168.", "10.")):
        return HostClass.PRIVATE
    labels = host.split(".")
    if labels[0] == "172" and len(labels) > 1 and labels[1].isdigit():
        if 16 <= int(labels[1]) <= 31:
            return HostClass.PRIVATE
    return HostClass.REMOTE


class NodeFilter(BaseModel):
    """Which instances to poll and which nodes to return.

    ``host_classes`` prunes instances before any network call; ``names``
    (when set) keeps only nodes whose final, daemon-resolved name is listed.
    """

    model_config = ConfigDict(frozen=True)
    host_classes: frozenset[HostClass] = ALL_HOSTS
    names: frozenset[str] | None = None

    @classmethod
    def from_keywords(
        cls, hosts: Iterable[str] | None = None, names: Iterable[str] | None = None
    ) -> "NodeFilter":
        classes: frozenset[HostClass] = ALL_HOSTS
        if hosts is not None:
            selected: set[HostClass] = set()
            for word in hosts:
                word = word.strip().lower()
                if not word:
                    continue
                if word not in _KEYWORDS:
                    raise ValueError(
                        f"Unknown host class '{word}'. Use one of {sorted(_KEYWORDS)}."
                    )
                selected |= _KEYWORDS[word]
            classes = frozenset(selected)
        name_set = None
        if names is not None:
            name_set = frozenset(n.strip() for n in names if n.strip())
        return cls(host_classes=classes, names=name_set)

    @classmethod
    def from_query(cls, query: Mapping[str, str]) -> "NodeFilter":
        """Build a filter from dashboard query parameters.

        ``hosts`` (comma-separated) wins over the single-choice flags
        ``includeAllHosts=false``, ``includeRemoteOnly=true`` and
        ``localhostOnly=true``.  ``names`` is comma-separated.
        """
        hosts: list[str] | None = None
        if "hosts" in query:
            hosts = query["hosts"].split(",")
        elif query.get("includeAllHosts") == "false":
            hosts = ["local"]
        elif query.get("includeRemoteOnly") == "true":
            hosts = ["remote"]
        elif query.get("localhostOnly") == "true":
            hosts = ["loopback"]
        names = query["names"].split(",") if "names" in query else None
        return cls.from_keywords(hosts, names)

    @property
    def selects_all_hosts(self) -> bool:
        return self.host_classes == ALL_HOSTS

    def admits(self, instance: Instance) -> bool:
        return classify_host(instance.hostname) in self.host_classes

    def select(self, instances: Iterable[Instance]) -> list[Instance]:
        """Instances admitted by the host classes, in registry order."""
        return [i for i in instances if self.admits(i)]

    def keeps_name(self, name: str) -> bool:
        return self.names is None or name in self.names
