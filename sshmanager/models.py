"""Data model for sshmanager: hosts, groups, jump hosts and probe results."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from .port_forwarding import PortForward

DEFAULT_PORT = 22

# Characters that would end or split a config line. Tab is a plain separator.
_LINE_BREAKING = re.compile(r"[\x00-\x08\x0a-\x1f\x7f\x85\u2028\u2029]")


def new_id() -> str:
    return uuid.uuid4().hex


def has_control_chars(value: str) -> bool:
    """Return True if *value* holds a character that cannot stay on one config line."""
    return bool(_LINE_BREAKING.search(value or ""))


class GroupColor(str, Enum):
    RED = "red"
    ORANGE = "orange"
    YELLOW = "yellow"
    GREEN = "green"
    BLUE = "blue"
    PURPLE = "purple"
    PINK = "pink"
    GRAY = "gray"

    @classmethod
    def coerce(cls, value: Any) -> "GroupColor":
        """Return the matching color, falling back to blue for unknown names."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").lower())
        except ValueError:
            return cls.BLUE


@dataclass
class Group:
    """A named bucket of hosts shown in ``sort_order``."""

    name: str
    icon: str = "folder"
    color: GroupColor = GroupColor.BLUE
    is_expanded: bool = True
    sort_order: int = 0
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        self.color = GroupColor.coerce(self.color)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "color": self.color.value,
            "expanded": self.is_expanded,
            "order": self.sort_order,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Group":
        return cls(
            id=str(data.get("id") or new_id()),
            name=str(data.get("name", "")),
            icon=str(data.get("icon") or "folder"),
            color=GroupColor.coerce(data.get("color")),
            is_expanded=bool(data.get("expanded", True)),
            sort_order=int(data.get("order", 0) or 0),
        )


class JumpHostType(str, Enum):
    REFERENCE = "reference"
    MANUAL = "manual"


@dataclass
class JumpHost:
    """One hop of a ProxyJump chain.

    Reference hops point at another registry host by id and keep ``alias`` as
    a fallback for when that host disappears. Manual hops carry their own
    endpoint.
    """

    type: JumpHostType = JumpHostType.REFERENCE
    referenced_host_id: Optional[str] = None
    alias: str = ""
    hostname: str = ""
    user: str = ""
    port: int = DEFAULT_PORT
    identity_file: str = ""
    id: str = field(default_factory=new_id, compare=False)

    @classmethod
    def reference(cls, host: "Host") -> "JumpHost":
        return cls(type=JumpHostType.REFERENCE, referenced_host_id=host.id, alias=host.alias)

    @classmethod
    def manual(cls, hostname: str, user: str = "", port: int = DEFAULT_PORT, alias: str = "") -> "JumpHost":
        return cls(type=JumpHostType.MANUAL, alias=alias, hostname=hostname, user=user, port=port)

    @property
    def is_valid(self) -> bool:
        if self.type is JumpHostType.REFERENCE:
            return self.referenced_host_id is not None or bool(self.alias)
        return bool(self.hostname)

    @property
    def display_name(self) -> str:
        if self.type is JumpHostType.REFERENCE:
            return self.alias
        if self.alias:
            return self.alias
        if self.user and self.hostname:
            return f"{self.user}@{self.hostname}"
        if self.hostname:
            return self.hostname
        return "unnamed jump host"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "referenced_host_id": self.referenced_host_id,
            "alias": self.alias,
            "hostname": self.hostname,
            "user": self.user,
            "port": self.port,
            "identity_file": self.identity_file,
        }


class FailureKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    CONNECTION_TIMEOUT = "connection_timeout"
    UNKNOWN_HOST = "unknown_host"
    KEY_FILE_NOT_FOUND = "key_file_not_found"
    KEY_FILE_WRONG_PERMISSIONS = "key_file_wrong_permissions"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ConnectionFailure:
    """Classified probe failure; ``detail`` holds the path or raw message."""

    kind: FailureKind
    detail: str = ""

    @property
    def message(self) -> str:
        if self.kind is FailureKind.PERMISSION_DENIED:
            return "The server refused the connection, check the key configuration"
        if self.kind is FailureKind.CONNECTION_TIMEOUT:
            return "Connection timed out, check the host address and network"
        if self.kind is FailureKind.UNKNOWN_HOST:
            return "Could not resolve the host address"
        if self.kind is FailureKind.KEY_FILE_NOT_FOUND:
            return f"Key file not found: {self.detail}"
        if self.kind is FailureKind.KEY_FILE_WRONG_PERMISSIONS:
            return f"Key file has wrong permissions: {self.detail} (expected 600)"
        return f"Connection failed: {self.detail}"


@dataclass(frozen=True)
class ConnectionTestResult:
    latency: Optional[float] = None
    failure: Optional[ConnectionFailure] = None

    @classmethod
    def success(cls, latency: float) -> "ConnectionTestResult":
        return cls(latency=latency)

    @classmethod
    def failed(cls, kind: FailureKind, detail: str = "") -> "ConnectionTestResult":
        return cls(failure=ConnectionFailure(kind, detail))

    @property
    def ok(self) -> bool:
        return self.failure is None

    def describe(self) -> str:
        if self.failure is None:
            return f"OK ({(self.latency or 0.0) * 1000:.0f} ms)"
        return self.failure.message


@dataclass
class Host:
    """A connection profile, one ``Host`` block of the SSH config."""

    alias: str = ""
    hostname: str = ""
    user: str = ""
    port: int = DEFAULT_PORT
    identity_file: str = ""
    options: Dict[str, str] = field(default_factory=dict)
    group_id: Optional[str] = None
    tags: Set[str] = field(default_factory=set)
    port_forwards: List[PortForward] = field(default_factory=list)
    jump_hosts: List[JumpHost] = field(default_factory=list)
    is_favorite: bool = False
    id: str = field(default_factory=new_id, compare=False)
    # Runtime-only probe state
    is_testing: bool = field(default=False, compare=False, repr=False)
    last_test_result: Optional[ConnectionTestResult] = field(default=None, compare=False, repr=False)

    def __str__(self):
        return f"{self.alias} ({self.user_at_host()})"

    @property
    def is_complete(self) -> bool:
        return bool(self.alias.strip())

    def user_at_host(self) -> str:
        if not self.user:
            return self.hostname
        return f"{self.user}@{self.hostname}"
