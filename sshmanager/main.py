#!/usr/bin/env python3
"""
sshmanager - manage SSH connection profiles stored in ~/.ssh/config
"""

import argparse
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import List, Optional

from .command_builder import format_ssh_command
from .config import Config
from .connection_test import make_probe
from .host_registry import HostRegistry
from .models import Host
from .persistence import SSHConfigStore
from .platform_utils import get_data_dir
from .port_forwarding import PortForward
from .ssh_config_utils import format_host_entry

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, config: Optional[Config] = None, log_dir: Optional[str] = None):
    """Set up logging configuration"""
    # Create log directory if it doesn't exist
    log_dir = log_dir or get_data_dir()

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Clear any existing handlers
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handlers: List[logging.Handler] = []
    try:
        os.makedirs(log_dir, exist_ok=True)
        # File handler with rotation
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'sshmanager.log'),
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        handlers.append(file_handler)
    except OSError as e:
        print(f"Warning: file logging disabled: {e}", file=sys.stderr)

    # Console handler only reports problems unless verbose
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    handlers.append(console_handler)

    # Determine verbosity via config or command line
    if not verbose and config is not None:
        verbose = bool(config.get_setting('debug_enabled', False))
    effective_level = logging.DEBUG if verbose else logging.INFO

    for handler in handlers:
        handler.setFormatter(formatter)
        if handler is not console_handler:
            handler.setLevel(effective_level)
        root_logger.addHandler(handler)
    root_logger.setLevel(effective_level)

    logging.getLogger('paramiko').setLevel(logging.INFO if verbose else logging.WARNING)
    logging.getLogger('sshmanager').setLevel(effective_level)


def _find_host(registry: HostRegistry, alias: str) -> Host:
    host = registry.find_by_alias(alias)
    if host is None:
        raise LookupError(f"No host named '{alias}'")
    return host


def _resolve_group(registry: HostRegistry, name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    group = registry.find_group_by_name(name)
    if group is None:
        raise LookupError(f"No group named '{name}'")
    return group.id


def cmd_list(args, registry: HostRegistry, store: SSHConfigStore) -> int:
    group_id = _resolve_group(registry, args.group)
    kwargs = {'group_id': group_id} if args.group else {}
    hosts = registry.search(args.search or "", tag=args.tag, favorites_only=args.favorites, **kwargs)
    for host in hosts:
        marker = '*' if host.is_favorite else ' '
        group = registry.get_group(host.group_id).name if host.group_id else ''
        print(f"{marker} {host.alias:<24} {host.user_at_host():<32} {group}")
    return 0


def cmd_show(args, registry: HostRegistry, store: SSHConfigStore) -> int:
    host = _find_host(registry, args.alias)
    resolver = registry.resolver()
    print(format_host_entry(host, resolver), end='')
    print(format_ssh_command(host, resolver))
    for forward in host.port_forwards:
        state = 'on ' if forward.is_active else 'off'
        print(f"  [{state}] {forward.display_description}")
    return 0


def cmd_command(args, registry: HostRegistry, store: SSHConfigStore) -> int:
    host = _find_host(registry, args.alias)
    print(format_ssh_command(host, registry.resolver()))
    return 0


def cmd_add(args, registry: HostRegistry, store: SSHConfigStore) -> int:
    if registry.find_by_alias(args.alias) is not None:
        logger.warning("Alias %s already exists; ssh will use the first block", args.alias)
    host = registry.add_host(
        alias=args.alias,
        hostname=args.hostname,
        user=args.user or '',
        port=args.port,
        identity_file=args.identity_file or '',
        group_id=_resolve_group(registry, args.group),
    )
    if args.proxy_jump:
        registry.set_proxy_jump(host.id, args.proxy_jump)
    for directive in args.forward or []:
        forward = PortForward.parse(directive)
        if forward is None:
            raise ValueError(f"Cannot parse forward: {directive}")
        registry.add_port_forward(host.id, forward)
    return 0 if store.save(registry) else 1


def cmd_remove(args, registry: HostRegistry, store: SSHConfigStore) -> int:
    registry.remove_host(_find_host(registry, args.alias).id)
    return 0 if store.save(registry) else 1


def cmd_favorite(args, registry: HostRegistry, store: SSHConfigStore) -> int:
    host = registry.toggle_favorite(_find_host(registry, args.alias).id)
    print(f"{host.alias}: {'favorite' if host.is_favorite else 'not favorite'}")
    return 0 if store.save(registry) else 1


def cmd_group_add(args, registry: HostRegistry, store: SSHConfigStore) -> int:
    registry.add_group(args.name, icon=args.icon, color=args.color)
    return 0 if store.save(registry) else 1


def cmd_test(args, registry: HostRegistry, store: SSHConfigStore) -> int:
    host = _find_host(registry, args.alias)
    config = store.metadata or Config()
    kind = config.probe_kind
    timeout = config.connect_timeout
    probe = make_probe(kind, timeout=timeout, resolver=registry.resolver(), config_path=store.path)
    registry.start_connection_test(host.id, probe, wait=True)
    result = host.last_test_result
    print(f"{host.alias}: {result.describe()}")
    return 0 if result.ok else 1


def cmd_validate(args, registry: HostRegistry, store: SSHConfigStore) -> int:
    issues = registry.validate()
    for issue in issues:
        print(issue.message)
    return 1 if issues else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sshmanager", description="Manage SSH connection profiles")
    parser.add_argument("--config", "-F", help="SSH config file (default: ~/.ssh/config)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("list", help="List hosts")
    p.add_argument("--search", "-s", help="Filter by alias, hostname, user or tag")
    p.add_argument("--group", help="Only hosts of this group")
    p.add_argument("--tag", help="Only hosts carrying this tag")
    p.add_argument("--favorites", action="store_true", help="Only favorite hosts")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("show", help="Show the config block and command for a host")
    p.add_argument("alias")
    p.set_defaults(func=cmd_show)

    p = sub.add_parser("command", help="Print the ssh command for a host")
    p.add_argument("alias")
    p.set_defaults(func=cmd_command)

    p = sub.add_parser("add", help="Add a host")
    p.add_argument("alias")
    p.add_argument("--hostname", required=True)
    p.add_argument("--user")
    p.add_argument("--port", type=int, default=22)
    p.add_argument("--identity-file")
    p.add_argument("--group", help="Existing group name")
    p.add_argument("--proxy-jump", help="Comma separated jump hosts")
    p.add_argument("--forward", action="append", help="Forward directive, e.g. 'LocalForward 8080 localhost:80'")
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("remove", help="Remove a host")
    p.add_argument("alias")
    p.set_defaults(func=cmd_remove)

    p = sub.add_parser("favorite", help="Toggle the favorite flag of a host")
    p.add_argument("alias")
    p.set_defaults(func=cmd_favorite)

    p = sub.add_parser("group-add", help="Create a group")
    p.add_argument("name")
    p.add_argument("--color", default="blue")
    p.add_argument("--icon", default="folder")
    p.set_defaults(func=cmd_group_add)

    p = sub.add_parser("test", help="Test connectivity to a host")
    p.add_argument("alias")
    p.set_defaults(func=cmd_test)

    p = sub.add_parser("validate", help="Report configuration problems")
    p.set_defaults(func=cmd_validate)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = Config()
    setup_logging(args.verbose, config)

    path = args.config or config.ssh_config_path
    store = SSHConfigStore(path, metadata=config)
    registry = store.load()

    try:
        return args.func(args, registry, store)
    except (LookupError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
