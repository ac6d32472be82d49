"""
Settings store for sshmanager
Keeps application preferences and the per-host state that ssh_config cannot
express (groups, favorites, tags, disabled forwards) in one JSON document
"""

import copy
import json
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

from .platform_utils import get_config_dir
from .signals import Signal

logger = logging.getLogger(__name__)

# Bump when a stored key changes meaning; older files are set aside
CONFIG_VERSION = 1

SETTINGS_FILENAME = 'config.json'
PROBE_KINDS = ('command', 'paramiko')

DEFAULT_SETTINGS: Dict[str, Any] = {
    'config_version': CONFIG_VERSION,
    'debug_enabled': False,
    'ssh': {
        'config_path': None,  # None selects ~/.ssh/config
        'connect_timeout': 5,
        'probe': 'command',
    },
    'groups': [],
    'hosts_meta': {},  # alias -> {group_id, favorite, tags, forwards}
}


class Config:
    """JSON backed settings with dotted-key access"""

    def __init__(self, config_dir: Optional[str] = None):
        self.setting_changed = Signal('setting-changed')
        self.config_file = os.path.join(config_dir or get_config_dir(), SETTINGS_FILENAME)
        self.config_data = self.load_json_config()

    # --- File handling -----------------------------------------------------

    def _read_file(self) -> Optional[Dict[str, Any]]:
        if not os.path.exists(self.config_file):
            return None
        with open(self.config_file, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("settings file does not hold a JSON object")
        return data

    def _set_aside_outdated(self, stored_version: Any):
        backup_file = self.config_file + '.bak'
        try:
            os.replace(self.config_file, backup_file)
        except OSError as e:
            logger.warning(f"Could not keep outdated settings ({e}); discarding them")
            os.remove(self.config_file)
        else:
            logger.warning(
                "Settings version %s is older than %s; moved to %s",
                stored_version, CONFIG_VERSION, backup_file,
            )

    def load_json_config(self) -> Dict[str, Any]:
        """Read the settings file, upgrading or completing it as needed.

        A missing file yields the defaults without creating anything; a broken
        one is logged and also yields the defaults.
        """
        try:
            data = self._read_file()
            if data is None:
                return self.get_default_config()

            stored_version = data.get('config_version', 1)
            if not isinstance(stored_version, int) or stored_version < CONFIG_VERSION:
                self._set_aside_outdated(stored_version)
                data = self.get_default_config()
                self.save_json_config(data)
                return data

            data, changed = self._ensure_config_defaults(data)
            if changed:
                self.save_json_config(data)
            return data
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load settings from {self.config_file}: {e}")
            return self.get_default_config()

    def save_json_config(self, config_data: Optional[Dict[str, Any]] = None) -> bool:
        """Write settings through a temp file; False when that fails"""
        data = self.config_data if config_data is None else config_data
        tmp_file = self.config_file + '.tmp'
        try:
            os.makedirs(os.path.dirname(self.config_file), exist_ok=True)
            with open(tmp_file, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_file, self.config_file)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save settings to {self.config_file}: {e}")
            return False
        logger.debug("Settings written to %s", self.config_file)
        return True

    def get_default_config(self) -> Dict[str, Any]:
        return copy.deepcopy(DEFAULT_SETTINGS)

    def _ensure_config_defaults(self, data: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """Add keys introduced after *data* was written; report whether any were"""
        changed = False
        for key, default in self.get_default_config().items():
            current = data.get(key)
            if key not in data or type(current) is not type(default) and default is not None:
                data[key] = default
                changed = True
                continue
            if isinstance(default, dict):
                for sub_key, sub_default in default.items():
                    if sub_key not in current:
                        current[sub_key] = sub_default
                        changed = True
        return data, changed

    # --- Dotted access -----------------------------------------------------

    def get_setting(self, key: str, default=None):
        """Return the value at dotted *key*, or *default*"""
        node: Any = self.config_data
        for part in key.split('.'):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set_setting(self, key: str, value: Any, save: bool = True):
        """Store *value* at dotted *key* and announce it"""
        *parents, leaf = key.split('.')
        node = self.config_data
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[leaf] = value
        if save:
            self.save_json_config()
        self.setting_changed.emit(key, value)
        logger.debug(f"Setting {key} = {value!r}")

    # --- SSH settings ------------------------------------------------------

    @property
    def ssh_config_path(self) -> Optional[str]:
        return self.get_setting('ssh.config_path') or None

    @property
    def connect_timeout(self) -> int:
        try:
            timeout = int(self.get_setting('ssh.connect_timeout', 5))
        except (TypeError, ValueError):
            return DEFAULT_SETTINGS['ssh']['connect_timeout']
        return timeout if timeout > 0 else DEFAULT_SETTINGS['ssh']['connect_timeout']

    @property
    def probe_kind(self) -> str:
        kind = self.get_setting('ssh.probe', 'command')
        if kind not in PROBE_KINDS:
            logger.warning("Unknown probe kind %r in settings, using 'command'", kind)
            return 'command'
        return kind

    # --- Host metadata -----------------------------------------------------

    def get_hosts_meta(self) -> Dict[str, Dict[str, Any]]:
        meta = self.get_setting('hosts_meta', {})
        return meta if isinstance(meta, dict) else {}

    def get_groups_data(self) -> List[Dict[str, Any]]:
        groups = self.get_setting('groups', [])
        return [entry for entry in groups if isinstance(entry, dict)] if isinstance(groups, list) else []

    def store_metadata(self, groups: List[Dict[str, Any]], hosts_meta: Dict[str, Dict[str, Any]]) -> bool:
        """Replace groups and host metadata in one write"""
        self.set_setting('groups', groups, save=False)
        self.set_setting('hosts_meta', hosts_meta, save=False)
        return self.save_json_config()
