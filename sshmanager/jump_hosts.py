"""ProxyJump chain resolution.

Turns the jump hosts stored on a :class:`~sshmanager.models.Host` into the
``-J``/``ProxyJump`` token list, and parses ``ProxyJump`` values back into
jump hosts bound against the known hosts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .models import DEFAULT_PORT, Host, JumpHost, JumpHostType

logger = logging.getLogger(__name__)


class JumpChainCycleError(ValueError):
    """Raised when nested chain expansion meets a host already on the path."""

    def __init__(self, path: List[str]):
        self.path = list(path)
        super().__init__("ProxyJump cycle detected: " + " -> ".join(self.path))


@dataclass(frozen=True)
class ResolvedHop:
    """Effective endpoint of one hop."""

    token: str
    hostname: str
    user: str = ""
    port: int = DEFAULT_PORT
    host_id: Optional[str] = None
    dangling: bool = False

    def describe(self) -> str:
        target = self.hostname or self.token
        if self.user:
            target = f"{self.user}@{target}"
        if self.port != DEFAULT_PORT:
            target = f"{target}:{self.port}"
        return target


def format_manual_hop(hostname: str, user: str = "", port: int = DEFAULT_PORT) -> str:
    """Render ``user@hostname:port``, omitting the default parts."""
    host = hostname
    if port != DEFAULT_PORT and ":" in host and not host.startswith("["):
        host = f"[{host}]"
    text = f"{user}@{host}" if user else host
    if port != DEFAULT_PORT:
        text = f"{text}:{port}"
    return text


class JumpChainResolver:
    """Resolve jump hosts against a set of hosts indexed by id."""

    def __init__(self, hosts: Iterable[Host]):
        self._hosts: Dict[str, Host] = {host.id: host for host in hosts}

    def lookup(self, host_id: Optional[str]) -> Optional[Host]:
        if host_id is None:
            return None
        return self._hosts.get(host_id)

    def resolve_hop(self, jump: JumpHost) -> ResolvedHop:
        if jump.type is JumpHostType.REFERENCE:
            target = self.lookup(jump.referenced_host_id)
            if target is not None:
                return ResolvedHop(
                    token=target.alias or jump.alias,
                    hostname=target.hostname,
                    user=target.user,
                    port=target.port,
                    host_id=target.id,
                )
            if jump.referenced_host_id is not None:
                logger.debug(
                    "Jump host reference %s is dangling, using alias %r",
                    jump.referenced_host_id,
                    jump.alias,
                )
            return ResolvedHop(
                token=jump.alias,
                hostname=jump.hostname or jump.alias,
                user=jump.user,
                port=jump.port,
                dangling=True,
            )
        return ResolvedHop(
            token=format_manual_hop(jump.hostname, jump.user, jump.port),
            hostname=jump.hostname,
            user=jump.user,
            port=jump.port,
        )

    def resolve(self, host: Host) -> List[ResolvedHop]:
        """Single-level resolution of *host*'s own chain, invalid hops skipped."""
        hops = []
        for jump in host.jump_hosts:
            if not jump.is_valid:
                logger.debug("Skipping invalid jump host on %s", host.alias)
                continue
            hop = self.resolve_hop(jump)
            if not hop.token:
                logger.debug("Skipping unresolvable jump host on %s", host.alias)
                continue
            hops.append(hop)
        return hops

    def proxy_jump_string(self, host: Host) -> str:
        return ",".join(hop.token for hop in self.resolve(host) if hop.token)

    def proxy_jump_directive(self, host: Host) -> str:
        value = self.proxy_jump_string(host)
        return f"ProxyJump {value}" if value else ""

    def expand_chain(self, host: Host) -> List[ResolvedHop]:
        """Resolve the chain including the chains of referenced hosts.

        Hops of a referenced host are placed before that host. A host id
        seen twice on the current path raises :class:`JumpChainCycleError`.
        """
        return self._expand(host, [host.id], [host.alias or host.id])

    def _expand(self, host: Host, path_ids: List[str], path_names: List[str]) -> List[ResolvedHop]:
        expanded: List[ResolvedHop] = []
        for jump in host.jump_hosts:
            if not jump.is_valid:
                continue
            hop = self.resolve_hop(jump)
            if not hop.token:
                continue
            target = self.lookup(hop.host_id)
            if target is not None:
                if target.id in path_ids:
                    raise JumpChainCycleError(path_names + [target.alias or target.id])
                expanded.extend(
                    self._expand(target, path_ids + [target.id], path_names + [target.alias or target.id])
                )
            expanded.append(hop)
        return expanded


def _parse_manual_hop(token: str) -> Optional[JumpHost]:
    user = ""
    host = token
    port = DEFAULT_PORT
    if "@" in host:
        user, host = host.split("@", 1)
    if host.startswith("[") and "]" in host:
        end = host.index("]")
        rest = host[end + 1:]
        inner = host[1:end]
        if rest.startswith(":"):
            try:
                port = int(rest[1:])
                host = inner
            except ValueError:
                pass
        else:
            host = inner
    elif ":" in host:
        name, _, port_text = host.partition(":")
        try:
            port = int(port_text)
            host = name
        except ValueError:
            pass
    if not host:
        return None
    return JumpHost(type=JumpHostType.MANUAL, alias=token, hostname=host, user=user, port=port)


def parse_proxy_jump(value: str, hosts: Iterable[Host] = ()) -> List[JumpHost]:
    """Decompose a ``ProxyJump`` value into jump hosts.

    Tokens naming a known alias become reference hops, anything else is read
    as ``[user@]host[:port]``.
    """
    value = (value or "").strip()
    if not value or value.lower() == "none":
        return []
    by_alias: Dict[str, Host] = {}
    for host in hosts:
        if host.alias and host.alias not in by_alias:
            by_alias[host.alias] = host

    jumps: List[JumpHost] = []
    for raw in value.split(","):
        token = raw.strip()
        if not token:
            continue
        existing = by_alias.get(token)
        if existing is not None:
            jumps.append(JumpHost.reference(existing))
            continue
        jump = _parse_manual_hop(token)
        if jump is None:
            logger.debug("Ignoring unparseable ProxyJump hop %r", token)
            continue
        jumps.append(jump)
    return jumps
