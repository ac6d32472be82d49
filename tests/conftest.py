import os
import sys

import pytest

# Ensure project root is on sys.path
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    """Keep settings, logs and ~/.ssh of the test run inside tmp_path."""
    monkeypatch.setenv('HOME', str(tmp_path))
    monkeypatch.setenv('SSHMANAGER_CONFIG_DIR', str(tmp_path / 'settings'))
    monkeypatch.setenv('SSHMANAGER_SSH_DIR', str(tmp_path / '.ssh'))
    monkeypatch.setenv('XDG_DATA_HOME', str(tmp_path / 'data'))
    return tmp_path
