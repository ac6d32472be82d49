"""
Helpers for rendering ``ssh`` command lines for a host.

The launcher that opens a terminal is not part of this package; it receives
either the argv list from :func:`build_ssh_command` or the shell string from
:func:`format_ssh_command`.
"""

from __future__ import annotations

import shlex
from typing import List, Optional

from .jump_hosts import JumpChainResolver
from .models import DEFAULT_PORT, Host
from .port_forwarding import PortForwardType, render_forward_arguments


def build_ssh_command(
    host: Host,
    resolver: Optional[JumpChainResolver] = None,
    *,
    include_forwards: bool = True,
    include_jumps: bool = True,
) -> List[str]:
    """
    Return the argv list for connecting to *host*.

    The form is ``ssh <alias> [-p <port>] [-L ...] [-R ...] [-D ...] [-J hops]``.
    Only active and valid forwards are included, grouped by kind.

    Args:
        host: the host to connect to.
        resolver: resolves reference jump hosts; without one only the host
            itself is known, so references fall back to their stored alias.
    """
    if not host.alias:
        raise ValueError("Host has no alias to connect to")

    cmd: List[str] = ["ssh", host.alias]
    if host.port != DEFAULT_PORT:
        cmd.extend(["-p", str(host.port)])

    if include_forwards:
        for kind in (PortForwardType.LOCAL, PortForwardType.REMOTE, PortForwardType.DYNAMIC):
            cmd.extend(render_forward_arguments([f for f in host.port_forwards if f.type is kind]))

    if include_jumps:
        if resolver is None:
            resolver = JumpChainResolver([host])
        chain = resolver.proxy_jump_string(host)
        if chain:
            cmd.extend(["-J", chain])
    return cmd


def format_ssh_command(host: Host, resolver: Optional[JumpChainResolver] = None, **kwargs) -> str:
    return shlex.join(build_ssh_command(host, resolver, **kwargs))
