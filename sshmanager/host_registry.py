"""
Host registry for sshmanager
The in-memory model of all hosts and groups, with change notifications
"""

import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from .groups import GroupManager
from .jump_hosts import JumpChainResolver, parse_proxy_jump
from .models import (
    ConnectionTestResult, FailureKind, Group, GroupColor, Host, JumpHost, JumpHostType, has_control_chars,
)
from .port_forwarding import FORWARD_DIRECTIVES, PortForward, is_valid_port
from .search_utils import host_matches
from .signals import RegistrySignals

logger = logging.getLogger(__name__)

_ANY = object()

HOST_FIELDS = {
    'alias', 'hostname', 'user', 'port', 'identity_file', 'options', 'group_id',
    'tags', 'port_forwards', 'jump_hosts', 'is_favorite',
}

TEXT_FIELDS = ('alias', 'hostname', 'user', 'identity_file')

# Directives the parser reads into structured fields; as options they would
# come back as something else after a reload.
MODELED_DIRECTIVES = {
    'host', 'hostname', 'user', 'port', 'identityfile', 'proxyjump',
} | set(FORWARD_DIRECTIVES)

_OPTION_KEY_RE = re.compile(r"^[^\s=]+$")


def _check_text(name: str, value: Any):
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string, got {value!r}")
    if has_control_chars(value):
        raise ValueError(f"{name} contains a line break or control character: {value!r}")


def normalize_options(options: Dict[str, str]) -> Dict[str, str]:
    """Return *options* with lowercased keys and trimmed values.

    Raises ValueError for keys or values that cannot be written as a single
    ``Key value`` line and read back unchanged.
    """
    if not isinstance(options, dict):
        raise ValueError(f"options must be a dict, got {options!r}")
    normalized = {}
    for key, value in options.items():
        _check_text('option name', key)
        _check_text(f"option {key}", value)
        if not _OPTION_KEY_RE.match(key):
            raise ValueError(f"Invalid option name: {key!r}")
        lowered = key.lower()
        if lowered in MODELED_DIRECTIVES:
            raise ValueError(f"{key} is a host field, not an option")
        value = value.strip()
        if not value:
            raise ValueError(f"Option {key} has an empty value")
        normalized[lowered] = value
    return normalized


@dataclass(frozen=True)
class ValidationIssue:
    host_id: Optional[str]
    code: str
    message: str


class HostRegistry:
    """Owns every Host and Group.

    Mutations are synchronous and not locked; one owner is expected to edit
    the registry at a time. Each mutation emits one signal once applied.
    """

    def __init__(self, hosts: Optional[Iterable[Host]] = None, groups: Optional[Iterable[Group]] = None):
        self.signals = RegistrySignals()
        self.group_manager = GroupManager()
        self._hosts: List[Host] = []
        self.search_text = ""
        for group in groups or ():
            self.group_manager.add_group(group)
        for host in hosts or ():
            self._check_host(host)
            self._hosts.append(host)

    def __len__(self) -> int:
        return len(self._hosts)

    def __iter__(self) -> Iterator[Host]:
        return iter(list(self._hosts))

    def __contains__(self, host_id) -> bool:
        return any(host.id == host_id for host in self._hosts)

    @property
    def hosts(self) -> List[Host]:
        return list(self._hosts)

    # --- Hosts -------------------------------------------------------------

    def get_host(self, host_id: str) -> Host:
        for host in self._hosts:
            if host.id == host_id:
                return host
        raise KeyError(f"Unknown host id: {host_id}")

    def find_by_alias(self, alias: str) -> Optional[Host]:
        for host in self._hosts:
            if host.alias == alias:
                return host
        return None

    def _check_values(self, changes: Dict[str, Any]):
        """Reject values that would not survive a write and re-read of the file"""
        unknown = set(changes) - HOST_FIELDS
        if unknown:
            raise ValueError(f"Unknown host fields: {', '.join(sorted(unknown))}")
        if 'port' in changes and not is_valid_port(changes['port']):
            raise ValueError(f"Invalid port: {changes['port']!r}")
        for name in TEXT_FIELDS:
            if name in changes:
                _check_text(name, changes[name])
        if 'options' in changes:
            normalize_options(changes['options'])
        for forward in changes.get('port_forwards') or ():
            if not isinstance(forward, PortForward):
                raise ValueError(f"Not a PortForward: {forward!r}")
            _check_text('forward host', forward.remote_host)
            _check_text('forward bind address', forward.bind_address)
        for jump in changes.get('jump_hosts') or ():
            if not isinstance(jump, JumpHost):
                raise ValueError(f"Not a JumpHost: {jump!r}")
            for name in ('alias', 'hostname', 'user', 'identity_file'):
                _check_text(f"jump host {name}", getattr(jump, name))

    def _check_fields(self, changes: Dict[str, Any]):
        self._check_values(changes)
        group_id = changes.get('group_id')
        if group_id is not None and group_id not in self.group_manager.groups:
            raise KeyError(f"Unknown group id: {group_id}")

    @staticmethod
    def _host_values(host: Host) -> Dict[str, Any]:
        return {name: getattr(host, name) for name in HOST_FIELDS}

    def _check_host(self, host: Host):
        if host.id in self:
            raise ValueError(f"Host id '{host.id}' already exists")
        self._check_fields(self._host_values(host))
        host.options = normalize_options(host.options)

    def add_host(self, host: Optional[Host] = None, **fields) -> Host:
        """Add *host* (or a new Host built from *fields*) at the end"""
        if host is None:
            self._check_fields(fields)
            host = Host(**fields)
        elif fields:
            raise ValueError("Pass either a Host or field values, not both")
        self._check_host(host)
        self._hosts.append(host)
        logger.debug("Added host %s", host.alias or host.id)
        self.signals.emit('host-added', host)
        return host

    def update_host(self, host_id: str, **changes) -> Host:
        """Apply *changes* to a host after validating all of them"""
        host = self.get_host(host_id)
        self._check_fields(changes)
        if 'options' in changes:
            changes['options'] = normalize_options(changes['options'])
        if 'tags' in changes:
            changes['tags'] = {tag.strip() for tag in changes['tags'] if tag and tag.strip()}
        old_alias = host.alias
        for key, value in changes.items():
            setattr(host, key, value)
        if host.alias != old_alias:
            self._refresh_reference_aliases(host)
        self.signals.emit('host-updated', host)
        return host

    def _refresh_reference_aliases(self, target: Host):
        """Keep the fallback alias of hops pointing at *target* current"""
        for host in self._hosts:
            for jump in host.jump_hosts:
                if jump.type is JumpHostType.REFERENCE and jump.referenced_host_id == target.id:
                    jump.alias = target.alias

    def remove_host(self, host_id: str) -> Host:
        """Remove a host. Hops referencing it keep their fallback alias."""
        host = self.get_host(host_id)
        self._hosts.remove(host)
        logger.debug("Removed host %s", host.alias or host.id)
        self.signals.emit('host-removed', host)
        return host

    def move_host(self, host_id: str, index: int) -> Host:
        host = self.get_host(host_id)
        self._hosts.remove(host)
        self._hosts.insert(max(0, min(index, len(self._hosts))), host)
        self.signals.emit('host-updated', host)
        return host

    def replace_hosts(self, hosts: Iterable[Host], groups: Optional[Iterable[Group]] = None):
        """Swap the whole content, as done when (re)loading from disk"""
        hosts = list(hosts)
        manager = GroupManager()
        for group in groups or ():
            manager.add_group(group)
        seen = set()
        for host in hosts:
            if host.id in seen:
                raise ValueError(f"Host id '{host.id}' appears twice")
            seen.add(host.id)
            self._check_values(self._host_values(host))
        for host in hosts:
            if host.group_id is not None and host.group_id not in manager.groups:
                logger.warning("Host %s refers to unknown group %s; ungrouping", host.alias, host.group_id)
                host.group_id = None
            host.options = normalize_options(host.options)
        self._hosts = hosts
        self.group_manager = manager
        self.signals.emit('registry-reloaded', self)

    # --- Groups ------------------------------------------------------------

    @property
    def groups(self) -> List[Group]:
        return self.group_manager.get_all_groups()

    def get_group(self, group_id: str) -> Group:
        return self.group_manager.get_group(group_id)

    def find_group_by_name(self, name: str) -> Optional[Group]:
        return self.group_manager.find_group_by_name(name)

    def add_group(self, name: str, icon: str = "folder", color=GroupColor.BLUE,
                  sort_order: Optional[int] = None) -> Group:
        group = self.group_manager.create_group(name, icon=icon, color=color, sort_order=sort_order)
        self.signals.emit('group-added', group)
        return group

    def update_group(self, group_id: str, **changes) -> Group:
        group = self.group_manager.update_group(group_id, **changes)
        self.signals.emit('group-updated', group)
        return group

    def set_group_expanded(self, group_id: str, expanded: bool) -> Group:
        return self.update_group(group_id, is_expanded=bool(expanded))

    def reorder_group(self, source_group_id: str, target_group_id: str, position: str = "above") -> Group:
        self.group_manager.reorder_group(source_group_id, target_group_id, position)
        group = self.group_manager.get_group(source_group_id)
        self.signals.emit('group-updated', group)
        return group

    def remove_group(self, group_id: str) -> Group:
        """Delete a group; its hosts become ungrouped"""
        group = self.group_manager.delete_group(group_id)
        for host in self._hosts:
            if host.group_id == group_id:
                host.group_id = None
        self.signals.emit('group-removed', group)
        return group

    def move_host_to_group(self, host_id: str, group_id: Optional[str]) -> Host:
        return self.update_host(host_id, group_id=group_id)

    def hosts_in_group(self, group_id: Optional[str]) -> List[Host]:
        """Hosts of a group in registry order; ``None`` lists ungrouped hosts"""
        return [host for host in self._hosts if host.group_id == group_id]

    # --- Favorites and tags ------------------------------------------------

    def set_favorite(self, host_id: str, favorite: bool) -> Host:
        return self.update_host(host_id, is_favorite=bool(favorite))

    def toggle_favorite(self, host_id: str) -> Host:
        host = self.get_host(host_id)
        return self.set_favorite(host_id, not host.is_favorite)

    @property
    def favorite_hosts(self) -> List[Host]:
        return [host for host in self._hosts if host.is_favorite]

    def add_tag(self, host_id: str, tag: str) -> Host:
        tag = (tag or "").strip()
        if not tag:
            raise ValueError("Tag cannot be empty")
        host = self.get_host(host_id)
        return self.update_host(host_id, tags=set(host.tags) | {tag})

    def remove_tag(self, host_id: str, tag: str) -> Host:
        host = self.get_host(host_id)
        return self.update_host(host_id, tags=set(host.tags) - {tag})

    def all_tags(self) -> List[str]:
        tags = set()
        for host in self._hosts:
            tags.update(host.tags)
        return sorted(tags, key=str.casefold)

    # --- Jump hosts --------------------------------------------------------

    def resolver(self) -> JumpChainResolver:
        return JumpChainResolver(self._hosts)

    def proxy_jump_string(self, host_id: str) -> str:
        return self.resolver().proxy_jump_string(self.get_host(host_id))

    def _check_jump(self, host: Host, jump: JumpHost):
        if not jump.is_valid:
            raise ValueError(f"Invalid jump host: {jump.display_name}")
        if jump.type is JumpHostType.REFERENCE and jump.referenced_host_id == host.id:
            raise ValueError(f"Host {host.alias} cannot jump through itself")

    def add_jump_host(self, host_id: str, jump: JumpHost, index: Optional[int] = None) -> Host:
        host = self.get_host(host_id)
        self._check_jump(host, jump)
        jumps = list(host.jump_hosts)
        jumps.insert(len(jumps) if index is None else index, jump)
        return self.update_host(host_id, jump_hosts=jumps)

    def _index_of_jump(self, host: Host, jump_id: str) -> int:
        for index, jump in enumerate(host.jump_hosts):
            if jump.id == jump_id:
                return index
        raise KeyError(f"Unknown jump host id: {jump_id}")

    def remove_jump_host(self, host_id: str, jump_id: str) -> Host:
        host = self.get_host(host_id)
        index = self._index_of_jump(host, jump_id)
        jumps = list(host.jump_hosts)
        del jumps[index]
        return self.update_host(host_id, jump_hosts=jumps)

    def move_jump_host(self, host_id: str, jump_id: str, index: int) -> Host:
        host = self.get_host(host_id)
        jumps = list(host.jump_hosts)
        jump = jumps.pop(self._index_of_jump(host, jump_id))
        jumps.insert(max(0, min(index, len(jumps))), jump)
        return self.update_host(host_id, jump_hosts=jumps)

    def set_proxy_jump(self, host_id: str, value: str) -> Host:
        """Replace the chain with the hops of a ``ProxyJump`` value"""
        host = self.get_host(host_id)
        others = [h for h in self._hosts if h.id != host.id]
        return self.update_host(host_id, jump_hosts=parse_proxy_jump(value, others))

    # --- Port forwards -----------------------------------------------------

    def _index_of_forward(self, host: Host, forward_id: str) -> int:
        for index, forward in enumerate(host.port_forwards):
            if forward.id == forward_id:
                return index
        raise KeyError(f"Unknown port forward id: {forward_id}")

    def add_port_forward(self, host_id: str, forward: PortForward) -> Host:
        if not forward.is_valid:
            raise ValueError(f"Invalid port forward: {forward.to_config_string()}")
        host = self.get_host(host_id)
        return self.update_host(host_id, port_forwards=list(host.port_forwards) + [forward])

    def update_port_forward(self, host_id: str, forward_id: str, **changes) -> Host:
        host = self.get_host(host_id)
        index = self._index_of_forward(host, forward_id)
        current = host.port_forwards[index]
        allowed = {'type', 'local_port', 'remote_host', 'remote_port', 'bind_address', 'description', 'is_active'}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Unknown port forward fields: {', '.join(sorted(unknown))}")
        candidate = PortForward(
            type=changes.get('type', current.type),
            local_port=changes.get('local_port', current.local_port),
            remote_host=changes.get('remote_host', current.remote_host),
            remote_port=changes.get('remote_port', current.remote_port),
            bind_address=changes.get('bind_address', current.bind_address),
            description=changes.get('description', current.description),
            is_active=changes.get('is_active', current.is_active),
            id=current.id,
        )
        if not candidate.is_valid:
            raise ValueError(f"Invalid port forward: {candidate.to_config_string()}")
        forwards = list(host.port_forwards)
        forwards[index] = candidate
        return self.update_host(host_id, port_forwards=forwards)

    def set_port_forward_active(self, host_id: str, forward_id: str, active: bool) -> Host:
        return self.update_port_forward(host_id, forward_id, is_active=bool(active))

    def remove_port_forward(self, host_id: str, forward_id: str) -> Host:
        host = self.get_host(host_id)
        index = self._index_of_forward(host, forward_id)
        forwards = list(host.port_forwards)
        del forwards[index]
        return self.update_host(host_id, port_forwards=forwards)

    # --- Search and validation ---------------------------------------------

    def search(self, query: Optional[str] = None, group_id: Any = _ANY, tag: Optional[str] = None,
               favorites_only: bool = False) -> List[Host]:
        """Filtered view in registry order.

        *query* defaults to ``search_text``. ``group_id=None`` selects
        ungrouped hosts; leave it out to search all groups.
        """
        if query is None:
            query = self.search_text
        results = []
        for host in self._hosts:
            if group_id is not _ANY and host.group_id != group_id:
                continue
            if tag is not None and tag not in host.tags:
                continue
            if favorites_only and not host.is_favorite:
                continue
            if host_matches(host, query):
                results.append(host)
        return results

    def validate(self) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        seen_aliases: Dict[str, str] = {}
        resolver = self.resolver()
        for host in self._hosts:
            name = host.alias or host.id
            if not host.is_complete:
                issues.append(ValidationIssue(host.id, 'incomplete', f"Host {host.id} has no alias"))
            elif host.alias in seen_aliases:
                issues.append(ValidationIssue(
                    host.id, 'duplicate-alias', f"Alias {host.alias} is used by more than one host"))
            else:
                seen_aliases[host.alias] = host.id
            if not is_valid_port(host.port):
                issues.append(ValidationIssue(host.id, 'invalid-port', f"{name}: invalid port {host.port!r}"))
            if host.group_id is not None and host.group_id not in self.group_manager.groups:
                issues.append(ValidationIssue(host.id, 'unknown-group', f"{name}: unknown group {host.group_id}"))
            for forward in host.port_forwards:
                if not forward.is_valid:
                    issues.append(ValidationIssue(
                        host.id, 'invalid-forward', f"{name}: invalid forward {forward.to_config_string()}"))
            for jump in host.jump_hosts:
                if not jump.is_valid:
                    issues.append(ValidationIssue(
                        host.id, 'invalid-jump', f"{name}: invalid jump host {jump.display_name}"))
                elif resolver.resolve_hop(jump).dangling and not jump.alias:
                    issues.append(ValidationIssue(
                        host.id, 'invalid-jump', f"{name}: jump host {jump.referenced_host_id} no longer exists"))
        return issues

    # --- Connectivity probe ------------------------------------------------

    def start_connection_test(self, host_id: str, probe: Callable[[Host], ConnectionTestResult],
                              wait: bool = False) -> threading.Thread:
        """Run *probe* against a host in a background thread.

        The result lands in the host's transient test state; when the host
        was removed meanwhile the result is dropped.
        """
        host = self.get_host(host_id)
        host.is_testing = True
        self.signals.emit('host-test-started', host)

        def _run():
            started = time.monotonic()
            try:
                result = probe(host)
            except Exception as exc:
                logger.error("Connection probe for %s failed: %s", host.alias, exc, exc_info=True)
                result = ConnectionTestResult.failed(FailureKind.UNKNOWN, str(exc))
            logger.debug("Probe for %s finished in %.2fs", host.alias, time.monotonic() - started)
            host.is_testing = False
            host.last_test_result = result
            if host.id not in self:
                logger.debug("Host %s was removed during its test; dropping result", host.alias)
                return
            self.signals.emit('host-test-finished', host, result)

        thread = threading.Thread(target=_run, name=f"probe-{host.alias or host.id}", daemon=True)
        thread.start()
        if wait:
            thread.join()
        return thread
