"""Reading and writing the OpenSSH client configuration format.

Only ``Host`` blocks and a known subset of directives are modeled; every other
directive is carried through as an opaque option. Parsing never raises: lines
that do not fit are skipped.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .jump_hosts import JumpChainResolver, parse_proxy_jump
from .models import DEFAULT_PORT, Host, has_control_chars
from .port_forwarding import PortForward, is_forward_directive, is_valid_port

logger = logging.getLogger(__name__)

# "Key Value", "Key=Value" and "Key = Value" are all accepted by ssh.
_DIRECTIVE_RE = re.compile(r"^([^\s=]+)(?:\s*=\s*|\s+)(.*)$")

INDENT = "  "


def tokenize_config(text: str) -> Iterator[Tuple[int, str, str]]:
    """Yield ``(line_number, key, value)`` for each directive line.

    Blank lines, comments, lines with fewer than two tokens and lines holding
    control characters are skipped.
    """
    for line_number, raw_line in enumerate((text or "").splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith('#'):
            continue
        if has_control_chars(line):
            logger.debug("Skipping line %d with control characters", line_number)
            continue
        match = _DIRECTIVE_RE.match(line)
        if not match:
            logger.debug("Skipping malformed line %d: %r", line_number, line)
            continue
        key, value = match.group(1), match.group(2).strip()
        if not value:
            logger.debug("Skipping directive without value on line %d: %r", line_number, line)
            continue
        yield line_number, key, value


@dataclass(frozen=True)
class Directive:
    """A decoded configuration line."""

    kind: str
    key: str
    value: str
    port: Optional[int] = None
    forward: Optional[PortForward] = None


def parse_port(value: str) -> int:
    """Parse a port number, falling back to 22."""
    try:
        port = int(value.strip())
    except (AttributeError, ValueError):
        return DEFAULT_PORT
    return port if is_valid_port(port) else DEFAULT_PORT


def decode_directive(key: str, value: str) -> Directive:
    lowered = key.lower()
    if lowered in ('host', 'hostname', 'user', 'identityfile', 'proxyjump'):
        return Directive(lowered, lowered, value)
    if lowered == 'port':
        return Directive('port', lowered, value, port=parse_port(value))
    if is_forward_directive(lowered):
        forward = PortForward.parse_directive(lowered, value)
        if forward is None:
            return Directive('invalid', lowered, value)
        return Directive('forward', lowered, value, forward=forward)
    return Directive('option', lowered, value)


@dataclass
class ParseResult:
    hosts: List[Host] = field(default_factory=list)
    # Directives found before the first Host line; they are not written back.
    global_directives: List[Tuple[str, str]] = field(default_factory=list)
    skipped: int = 0


def parse_ssh_config(text: str) -> ParseResult:
    """Parse config text into hosts."""
    result = ParseResult()
    current: Optional[Host] = None
    proxy_jumps: Dict[str, str] = {}

    for line_number, key, value in tokenize_config(text):
        directive = decode_directive(key, value)

        if directive.kind == 'host':
            if current is not None:
                result.hosts.append(current)
            current = Host(alias=value)
            continue

        if current is None:
            result.global_directives.append((key, value))
            continue

        if directive.kind == 'hostname':
            current.hostname = value
        elif directive.kind == 'user':
            current.user = value
        elif directive.kind == 'port':
            current.port = directive.port
        elif directive.kind == 'identityfile':
            current.identity_file = value
        elif directive.kind == 'proxyjump':
            proxy_jumps[current.id] = value
        elif directive.kind == 'forward':
            current.port_forwards.append(directive.forward)
        elif directive.kind == 'invalid':
            result.skipped += 1
            logger.debug("Ignoring unparseable forward on line %d: %s %s", line_number, key, value)
        else:
            current.options[directive.key] = value

    if current is not None:
        result.hosts.append(current)

    # Bound after the whole file is read so hops may name later hosts.
    # A host never references itself; such a hop stays a manual one.
    for host in result.hosts:
        if host.id in proxy_jumps:
            candidates = [other for other in result.hosts if other is not host]
            host.jump_hosts = parse_proxy_jump(proxy_jumps[host.id], candidates)

    if result.global_directives:
        logger.debug("Discarded %d directives outside Host blocks", len(result.global_directives))
    return result


def parse_hosts(text: str) -> List[Host]:
    return parse_ssh_config(text).hosts


def format_option_key(key: str) -> str:
    return key.capitalize()


def format_host_entry(host: Host, resolver: Optional[JumpChainResolver] = None) -> str:
    """Format one host as a ``Host`` block, ending with a blank line."""
    if resolver is None:
        resolver = JumpChainResolver([host])
    lines = [f"Host {host.alias}", f"{INDENT}HostName {host.hostname}"]
    if host.user:
        lines.append(f"{INDENT}User {host.user}")
    if host.port != DEFAULT_PORT:
        lines.append(f"{INDENT}Port {host.port}")
    if host.identity_file:
        lines.append(f"{INDENT}IdentityFile {host.identity_file}")

    proxy_jump = resolver.proxy_jump_directive(host)
    for key, value in sorted(host.options.items()):
        if proxy_jump and key == 'proxyjump':
            continue
        lines.append(f"{INDENT}{format_option_key(key)} {value}")

    if proxy_jump:
        lines.append(f"{INDENT}{proxy_jump}")
    for forward in host.port_forwards:
        if forward.is_active and forward.is_valid:
            lines.append(f"{INDENT}{forward.to_config_string()}")

    return "\n".join(lines) + "\n\n"


def format_ssh_config(hosts: Iterable[Host]) -> str:
    """Render hosts in order. Hosts without an alias are left out."""
    hosts = list(hosts)
    resolver = JumpChainResolver(hosts)
    blocks = []
    for host in hosts:
        if not host.is_complete:
            logger.warning("Not writing host %s: alias is empty", host.id)
            continue
        blocks.append(format_host_entry(host, resolver))
    return "".join(blocks)
