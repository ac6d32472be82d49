"""
sshmanager: SSH connection profiles backed by the OpenSSH client config.

The command line entry point lives in ``sshmanager.main``.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
