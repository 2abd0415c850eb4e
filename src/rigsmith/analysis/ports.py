"""Network endpoint detection: compose port maps, scripts and live sockets."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Protocol

import psutil

from rigsmith.analysis.manifests import read_compose, read_scripts, read_text
from rigsmith.analysis.model import Endpoint

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

logger = logging.getLogger(__name__)

_SCRIPT_PORT_RE = re.compile(
    r"(?:--port[=\s]+|-p\s+|\bPORT=|(?:localhost|0\.0\.0\.0|127\.0\.0\.1):|runserver\s+(?:[\d.]+:)?)"
    r"(\d{2,5})\b"
)
_EXPOSE_RE = re.compile(r"^\s*EXPOSE\s+(.+)$", re.MULTILINE | re.IGNORECASE)


class PortProbe(Protocol):
    """Live listening-socket enumeration."""

    def __call__(self) -> list[Endpoint]: ...


def _valid_port(value: int) -> bool:
    return 0 < value < 65536


def _parse_port_mapping(entry: Any) -> tuple[int, int | None] | None:
    """Parse one compose ``ports`` entry into ``(host, container)``.

    Accepts ``"8080:80"``, ``"127.0.0.1:5432:5432"``, ``"3000"``, ``3000``,
    ``"8080:80/tcp"`` and the long ``{published, target}`` syntax.
    """
    if isinstance(entry, dict):
        target = entry.get("target")
        published = entry.get("published", target)
        try:
            host = int(published)
            container = int(target) if target is not None else None
        except (TypeError, ValueError):
            return None
        return host, container
    if isinstance(entry, int):
        return entry, entry
    if not isinstance(entry, str):
        return None
    parts = entry.split("/", 1)[0].split(":")
    try:
        if len(parts) == 1:
            port = int(parts[0])
            return port, port
        host = int(parts[-2])
        return host, int(parts[-1])
    except ValueError:
        # ranges such as "8000-8010:8000-8010" are skipped
        return None


def compose_endpoints(project_root: Path) -> list[Endpoint]:
    compose = read_compose(project_root)
    if compose is None:
        return []
    filename, services = compose
    endpoints: list[Endpoint] = []
    for name, body in services.items():
        if not isinstance(body, dict):
            continue
        for entry in body.get("ports") or []:
            parsed = _parse_port_mapping(entry)
            if parsed is None or not _valid_port(parsed[0]):
                continue
            host, container = parsed
            endpoints.append(
                Endpoint(port=host, container_port=container, source=f"{filename}:{name}")
            )
    return endpoints


def script_endpoints(project_root: Path) -> list[Endpoint]:
    endpoints: list[Endpoint] = []
    for name, command in read_scripts(project_root).items():
        for match in _SCRIPT_PORT_RE.finditer(command):
            port = int(match.group(1))
            if _valid_port(port):
                endpoints.append(Endpoint(port=port, container_port=port, source=f"script:{name}"))
    return endpoints


def dockerfile_endpoints(project_root: Path) -> list[Endpoint]:
    endpoints: list[Endpoint] = []
    for match in _EXPOSE_RE.finditer(read_text(project_root / "Dockerfile")):
        for token in match.group(1).split():
            try:
                port = int(token.split("/", 1)[0])
            except ValueError:
                continue
            if _valid_port(port):
                endpoints.append(Endpoint(port=port, container_port=port, source="Dockerfile"))
    return endpoints


def probe_listening_ports() -> list[Endpoint]:
    """Listening TCP sockets on this host, with owning process names.

    Sockets whose process cannot be inspected are kept without a name.
    """
    try:
        connections = psutil.net_connections(kind="tcp")
    except psutil.AccessDenied:
        logger.debug("Not permitted to enumerate sockets; skipping port probe")
        return []

    endpoints: list[Endpoint] = []
    for conn in connections:
        if conn.status != psutil.CONN_LISTEN or not conn.laddr:
            continue
        process: str | None = None
        if conn.pid:
            try:
                process = psutil.Process(conn.pid).name()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                process = None
        endpoints.append(
            Endpoint(port=conn.laddr.port, container_port=None, process=process, source="probe")
        )
    return endpoints


def merge_endpoints(*sources: Iterable[Endpoint]) -> tuple[Endpoint, ...]:
    """Merge endpoint lists, de-duplicated by port and sorted by port.

    The first entry for a port wins; a later entry's process name fills in
    a missing one.
    """
    by_port: dict[int, Endpoint] = {}
    for source in sources:
        for endpoint in source:
            existing = by_port.get(endpoint.port)
            if existing is None:
                by_port[endpoint.port] = endpoint
            elif existing.process is None and endpoint.process is not None:
                by_port[endpoint.port] = Endpoint(
                    port=existing.port,
                    container_port=existing.container_port,
                    process=endpoint.process,
                    source=existing.source,
                )
    return tuple(by_port[port] for port in sorted(by_port))
