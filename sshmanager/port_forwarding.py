"""
Port forwarding rules for sshmanager.

Validates forwarding rules and renders them either as ``ssh`` command-line
flags or as ``ssh_config`` directives, and parses directives back.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

MIN_PORT = 1
MAX_PORT = 65535


def is_valid_port(port: Any) -> bool:
    """Return True if *port* is an integer in the TCP port range."""
    if isinstance(port, bool) or not isinstance(port, int):
        return False
    return MIN_PORT <= port <= MAX_PORT


class PortForwardType(str, Enum):
    """Kind of tunnel opened alongside the SSH session."""

    LOCAL = "local"
    REMOTE = "remote"
    DYNAMIC = "dynamic"

    @property
    def ssh_flag(self) -> str:
        if self is PortForwardType.LOCAL:
            return "-L"
        if self is PortForwardType.REMOTE:
            return "-R"
        return "-D"

    @property
    def directive(self) -> str:
        if self is PortForwardType.LOCAL:
            return "LocalForward"
        if self is PortForwardType.REMOTE:
            return "RemoteForward"
        return "DynamicForward"

    @property
    def display_name(self) -> str:
        if self is PortForwardType.LOCAL:
            return "Local forward"
        if self is PortForwardType.REMOTE:
            return "Remote forward"
        return "Dynamic forward (SOCKS)"


# Directive names (lowercased) accepted when parsing, including short aliases.
FORWARD_DIRECTIVES: Dict[str, PortForwardType] = {
    "localforward": PortForwardType.LOCAL,
    "lf": PortForwardType.LOCAL,
    "remoteforward": PortForwardType.REMOTE,
    "rf": PortForwardType.REMOTE,
    "dynamicforward": PortForwardType.DYNAMIC,
    "df": PortForwardType.DYNAMIC,
}


def is_forward_directive(key: str) -> bool:
    return (key or "").lower() in FORWARD_DIRECTIVES


def _format_forward_host(host: str) -> str:
    host = (host or "").strip()
    if not host:
        return host
    if ":" in host and not (host.startswith("[") and host.endswith("]")):
        return f"[{host}]"
    return host


def _split_host_port(spec: str) -> Optional[Tuple[str, str]]:
    """Split ``host:port`` (``[v6]:port`` allowed) into its two halves."""
    if spec.startswith("["):
        end = spec.find("]")
        if end == -1 or spec[end + 1:end + 2] != ":":
            return None
        return spec[1:end], spec[end + 2:]
    parts = spec.split(":")
    if len(parts) != 2:
        return None
    return parts[0], parts[1]


def _parse_int(value: str) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_listen_spec(spec: str) -> Optional[Tuple[str, int]]:
    """Parse ``[bind_address:]port``."""
    if ":" not in spec:
        port = _parse_int(spec)
        return None if port is None else ("", port)
    split = _split_host_port(spec)
    if split is None:
        return None
    bind_address, port_text = split
    port = _parse_int(port_text)
    if port is None:
        return None
    return bind_address, port


@dataclass
class PortForward:
    """One forwarding rule owned by a host.

    ``local_port`` is the listening port for every variant (the port opened
    on the remote side for remote forwards). ``remote_host``/``remote_port``
    name the destination and are unused for dynamic forwards.
    """

    type: PortForwardType = PortForwardType.LOCAL
    local_port: int = 8080
    remote_host: str = "localhost"
    remote_port: int = 80
    bind_address: str = ""
    description: Optional[str] = None
    is_active: bool = True
    id: str = field(default_factory=lambda: uuid.uuid4().hex, compare=False)

    @classmethod
    def local(cls, local_port: int, remote_host: str, remote_port: int, **kwargs) -> "PortForward":
        return cls(PortForwardType.LOCAL, local_port, remote_host, remote_port, **kwargs)

    @classmethod
    def remote(cls, local_port: int, remote_host: str, remote_port: int, **kwargs) -> "PortForward":
        return cls(PortForwardType.REMOTE, local_port, remote_host, remote_port, **kwargs)

    @classmethod
    def dynamic(cls, local_port: int, **kwargs) -> "PortForward":
        return cls(PortForwardType.DYNAMIC, local_port, "", 0, **kwargs)

    @property
    def is_valid(self) -> bool:
        if not is_valid_port(self.local_port):
            return False
        if self.type is PortForwardType.DYNAMIC:
            return True
        return is_valid_port(self.remote_port)

    def _listen_spec(self) -> str:
        if self.bind_address:
            return f"{_format_forward_host(self.bind_address)}:{self.local_port}"
        return str(self.local_port)

    def _target_spec(self) -> str:
        return f"{_format_forward_host(self.remote_host)}:{self.remote_port}"

    def to_ssh_argument(self) -> str:
        """Render the command-line flag form, e.g. ``-L 8080:localhost:80``."""
        return " ".join(self.to_ssh_args())

    def to_ssh_args(self) -> List[str]:
        if self.type is PortForwardType.DYNAMIC:
            return [self.type.ssh_flag, self._listen_spec()]
        return [self.type.ssh_flag, f"{self._listen_spec()}:{self._target_spec()}"]

    def to_config_string(self) -> str:
        """Render the ``ssh_config`` directive form."""
        if self.type is PortForwardType.DYNAMIC:
            return f"{self.type.directive} {self._listen_spec()}"
        return f"{self.type.directive} {self._listen_spec()} {self._target_spec()}"

    @property
    def display_description(self) -> str:
        if self.description:
            return self.description
        if self.type is PortForwardType.LOCAL:
            return f"Local :{self.local_port} -> {self.remote_host}:{self.remote_port}"
        if self.type is PortForwardType.REMOTE:
            return f"Remote :{self.local_port} <- {self.remote_host}:{self.remote_port}"
        return f"SOCKS proxy localhost:{self.local_port}"

    @classmethod
    def parse(cls, config_string: str) -> Optional["PortForward"]:
        """Parse a forwarding directive; return None when it is malformed."""
        components = (config_string or "").split()
        if len(components) < 2:
            return None
        forward_type = FORWARD_DIRECTIVES.get(components[0].lower())
        if forward_type is None:
            return None

        listen = _parse_listen_spec(components[1])
        if listen is None:
            return None
        bind_address, listen_port = listen

        if forward_type is PortForwardType.DYNAMIC:
            return cls.dynamic(listen_port, bind_address=bind_address)

        if len(components) < 3:
            return None
        target = _split_host_port(components[2])
        if target is None:
            return None
        target_host, target_port_text = target
        target_port = _parse_int(target_port_text)
        if target_port is None or not target_host:
            return None
        return cls(
            type=forward_type,
            local_port=listen_port,
            remote_host=target_host,
            remote_port=target_port,
            bind_address=bind_address,
        )

    @classmethod
    def parse_directive(cls, key: str, value: str) -> Optional["PortForward"]:
        return cls.parse(f"{key} {value}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "local_port": self.local_port,
            "remote_host": self.remote_host,
            "remote_port": self.remote_port,
            "bind_address": self.bind_address,
            "description": self.description,
            "active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["PortForward"]:
        try:
            return cls(
                type=PortForwardType(data.get("type", "local")),
                local_port=int(data.get("local_port", 0)),
                remote_host=str(data.get("remote_host") or ""),
                remote_port=int(data.get("remote_port", 0) or 0),
                bind_address=str(data.get("bind_address") or ""),
                description=data.get("description") or None,
                is_active=bool(data.get("active", True)),
            )
        except (TypeError, ValueError) as exc:
            logger.debug("Ignoring malformed stored forward %r: %s", data, exc)
            return None


def render_forward_arguments(forwards: List[PortForward]) -> List[str]:
    """Return argv fragments for every active, valid forward in order."""
    args: List[str] = []
    for forward in forwards:
        if not forward.is_active:
            continue
        if not forward.is_valid:
            logger.debug("Skipping invalid forward %s", forward.to_config_string())
            continue
        args.extend(forward.to_ssh_args())
    return args
