"""
Persistence for sshmanager
Loads the registry from the SSH config file and writes it back atomically,
keeping a backup of the previous version and owner-only permissions
"""

import logging
import os
import shutil
import stat
import tempfile
from typing import Any, Dict, List, Optional

from .config import Config
from .host_registry import HostRegistry
from .models import Group, Host, JumpHostType, has_control_chars
from .platform_utils import expand_config_path, get_default_ssh_config_path
from .port_forwarding import PortForward
from .ssh_config_utils import format_ssh_config, parse_ssh_config

logger = logging.getLogger(__name__)

CONFIG_FILE_MODE = 0o600
CONFIG_DIR_MODE = 0o700
BACKUP_SUFFIX = '.backup'


def _ensure_secure_permissions(path: str, mode: int):
    """Best effort at applying restrictive permissions to files/directories."""
    try:
        current_mode = stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        return
    except OSError as exc:
        logger.debug("Unable to stat %s for permission fix: %s", path, exc)
        return

    if current_mode == mode:
        return

    try:
        os.chmod(path, mode)
    except OSError as exc:
        logger.debug("Unable to set permissions on %s: %s", path, exc)


class SSHConfigStore:
    """Reads and writes one SSH config file.

    When a :class:`Config` is given, GUI-only state (groups, favorites, tags,
    disabled forwards, forward descriptions) is kept in its ``hosts_meta`` and
    ``groups`` settings, keyed by host alias.
    """

    def __init__(self, path: Optional[str] = None, metadata: Optional[Config] = None):
        self.path = expand_config_path(path or get_default_ssh_config_path())
        self.metadata = metadata

    @property
    def backup_path(self) -> str:
        return self.path + BACKUP_SUFFIX

    def exists(self) -> bool:
        return os.path.exists(self.path)

    # --- Loading -----------------------------------------------------------

    def read_text(self) -> str:
        with open(self.path, 'r', encoding='utf-8') as f:
            return f.read()

    def load(self, registry: Optional[HostRegistry] = None) -> HostRegistry:
        """Load hosts into *registry* (a new one by default).

        A missing or unreadable file yields an empty registry; failures are
        logged, never raised.
        """
        if registry is None:
            registry = HostRegistry()

        hosts: List[Host] = []
        if not self.exists():
            logger.info("SSH config file not found at %s, starting empty", self.path)
        else:
            try:
                text = self.read_text()
            except (OSError, UnicodeDecodeError) as e:
                logger.error(f"Failed to load SSH config {self.path}: {e}")
            else:
                hosts = parse_ssh_config(text).hosts

        groups = self._load_groups()
        self._apply_metadata(hosts, groups, registry)
        registry.replace_hosts(hosts, groups)
        logger.info(f"Loaded {len(hosts)} hosts from SSH config")
        return registry

    def _load_groups(self) -> List[Group]:
        if self.metadata is None:
            return []
        groups = []
        for entry in self.metadata.get_groups_data():
            try:
                groups.append(Group.from_dict(entry))
            except (TypeError, ValueError, AttributeError) as e:
                logger.error(f"Failed to load group {entry!r}: {e}")
        return groups

    def _apply_metadata(self, hosts: List[Host], groups: List[Group], previous: HostRegistry):
        group_ids = {group.id for group in groups}
        hosts_meta = self.metadata.get_hosts_meta() if self.metadata is not None else {}

        # Keep ids stable across reloads of the same registry
        previous_by_alias = {}
        for old in previous.hosts:
            previous_by_alias.setdefault(old.alias, old)

        for host in hosts:
            old = previous_by_alias.pop(host.alias, None)
            if old is not None:
                self._adopt_id(host, old.id, hosts)

            meta = hosts_meta.get(host.alias)
            if not isinstance(meta, dict):
                continue
            group_id = meta.get('group_id')
            host.group_id = group_id if group_id in group_ids else None
            host.is_favorite = bool(meta.get('favorite', False))
            tags = meta.get('tags')
            host.tags = {str(tag) for tag in tags if tag} if isinstance(tags, (list, tuple)) else set()
            self._merge_forwards(host, meta.get('forwards') or [])

    @staticmethod
    def _adopt_id(host: Host, host_id: str, hosts: List[Host]):
        for other in hosts:
            for jump in other.jump_hosts:
                if jump.type is JumpHostType.REFERENCE and jump.referenced_host_id == host.id:
                    jump.referenced_host_id = host_id
        host.id = host_id

    @staticmethod
    def _merge_forwards(host: Host, stored: List[Dict[str, Any]]):
        """Attach descriptions and re-add forwards that are not in the file"""
        for entry in stored:
            forward = PortForward.from_dict(entry) if isinstance(entry, dict) else None
            if forward is None:
                continue
            if has_control_chars(forward.remote_host) or has_control_chars(forward.bind_address):
                logger.warning(f"Ignoring stored forward with control characters on {host.alias}")
                continue
            match = next(
                (f for f in host.port_forwards
                 if f.to_config_string() == forward.to_config_string() and not f.description),
                None,
            )
            if forward.is_active and forward.is_valid and match is not None:
                match.description = forward.description
            elif not forward.is_active or not forward.is_valid:
                host.port_forwards.append(forward)

    # --- Saving ------------------------------------------------------------

    def _backup(self):
        if not self.exists():
            return
        try:
            shutil.copy2(self.path, self.backup_path)
            _ensure_secure_permissions(self.backup_path, CONFIG_FILE_MODE)
            logger.debug("Backed up %s to %s", self.path, self.backup_path)
        except OSError as e:
            logger.warning(f"Could not back up SSH config to {self.backup_path}: {e}")

    @staticmethod
    def _ensure_parent_dir(path: str):
        parent_dir = os.path.dirname(path)
        if parent_dir and not os.path.isdir(parent_dir):
            os.makedirs(parent_dir, mode=CONFIG_DIR_MODE, exist_ok=True)
            _ensure_secure_permissions(parent_dir, CONFIG_DIR_MODE)

    def write_text(self, content: str):
        """Replace the file with *content* in one rename.

        A symlinked config keeps its link; the file it points at is replaced.
        """
        target = os.path.realpath(self.path)
        self._ensure_parent_dir(target)
        fd, tmp_path = tempfile.mkstemp(
            prefix='.' + os.path.basename(target) + '.',
            suffix='.tmp',
            dir=os.path.dirname(target),
        )
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, target)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        # Applied after the rename; some platforms reset modes on creation
        os.chmod(target, CONFIG_FILE_MODE)

    def save(self, registry: HostRegistry) -> bool:
        """Write *registry* to disk. Returns False (and logs) on failure."""
        self._backup()
        content = format_ssh_config(registry.hosts)
        try:
            self.write_text(content)
        except OSError as e:
            logger.error(f"Failed to write SSH config {self.path}: {e}")
            return False
        logger.info("Wrote %d hosts to %s", len(registry), self.path)
        if self.metadata is not None and not self.save_metadata(registry):
            return False
        return True

    def save_metadata(self, registry: HostRegistry) -> bool:
        hosts_meta: Dict[str, Dict[str, Any]] = {}
        for host in registry.hosts:
            if not host.is_complete:
                continue
            forwards = [
                f.to_dict() for f in host.port_forwards
                if not f.is_active or not f.is_valid or f.description
            ]
            if not (host.group_id or host.is_favorite or host.tags or forwards):
                continue
            hosts_meta[host.alias] = {
                'group_id': host.group_id,
                'favorite': host.is_favorite,
                'tags': sorted(host.tags),
                'forwards': forwards,
            }
        return self.metadata.store_metadata(registry.group_manager.to_list(), hosts_meta)
