"""Platform-related utility functions."""

import logging
import os
from pathlib import Path

APP_NAME = "sshmanager"

logger = logging.getLogger(__name__)


def _normalize_path(path: str) -> str:
    """Expand user references and return an absolute path."""
    return os.path.abspath(os.path.expanduser(path))


def _home_dir() -> str:
    expanded = os.path.expanduser("~")
    if expanded and expanded != "~":
        return expanded
    try:
        return str(Path.home())
    except RuntimeError:
        logger.warning(
            "Unable to determine the user's home directory; "
            "falling back to the current working directory."
        )
        return os.getcwd()


def get_config_dir() -> str:
    """Return the per-user configuration directory for sshmanager.

    ``SSHMANAGER_CONFIG_DIR`` wins over ``XDG_CONFIG_HOME``.
    """
    override = os.environ.get("SSHMANAGER_CONFIG_DIR")
    if override:
        return _normalize_path(override)
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(_home_dir(), ".config")
    return _normalize_path(os.path.join(base, APP_NAME))


def get_data_dir() -> str:
    """Return the per-user data directory for sshmanager (logs live here)."""
    base = os.environ.get("XDG_DATA_HOME") or os.path.join(_home_dir(), ".local", "share")
    return _normalize_path(os.path.join(base, APP_NAME))


def get_ssh_dir() -> str:
    """Return the user's SSH directory.

    The location can be overridden by setting the ``SSHMANAGER_SSH_DIR``
    environment variable.
    """
    override = os.environ.get("SSHMANAGER_SSH_DIR")
    if override:
        return _normalize_path(override)
    return _normalize_path(os.path.join(_home_dir(), ".ssh"))


def get_default_ssh_config_path() -> str:
    return os.path.join(get_ssh_dir(), "config")


def expand_config_path(path: str) -> str:
    """Expand ``~`` and environment variables, returning an absolute path."""
    if not path or not str(path).strip():
        raise ValueError("Cannot normalize empty SSH path")
    return os.path.abspath(os.path.expanduser(os.path.expandvars(path)))
