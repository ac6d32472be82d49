import os
import socket
import subprocess
from types import SimpleNamespace
from unittest.mock import MagicMock

import paramiko
import pytest

from sshmanager import connection_test
from sshmanager.connection_test import (
    ParamikoProbe,
    SSHCommandProbe,
    classify_ssh_output,
    make_probe,
)
from sshmanager.jump_hosts import JumpChainResolver
from sshmanager.models import FailureKind, Host, JumpHost


@pytest.mark.parametrize('output,kind', [
    ('user@host: Permission denied (publickey).', FailureKind.PERMISSION_DENIED),
    ('ssh: connect to host 10.0.0.1 port 22: Connection timed out', FailureKind.CONNECTION_TIMEOUT),
    ('ssh: connect to host x port 22: Operation timed out', FailureKind.CONNECTION_TIMEOUT),
    ('ssh: Could not resolve hostname nope: Name or service not known', FailureKind.UNKNOWN_HOST),
    ('ssh: Could not resolve hostname nope: nodename nor servname provided', FailureKind.UNKNOWN_HOST),
    ('kex_exchange_identification: read: Connection reset by peer', FailureKind.UNKNOWN),
])
def test_classify_ssh_output(output, kind):
    assert classify_ssh_output(output).failure.kind is kind


def test_classify_key_problems_carry_path():
    too_open = (
        "Permissions 0644 for '/home/u/.ssh/id_rsa' are too open.\n"
        "Load key \"/home/u/.ssh/id_rsa\": bad permissions\n"
        "u@h: Permission denied (publickey).\n"
    )
    failure = classify_ssh_output(too_open).failure
    assert failure.kind is FailureKind.KEY_FILE_WRONG_PERMISSIONS
    assert failure.detail == '/home/u/.ssh/id_rsa'

    missing = "Warning: Identity file /tmp/nokey not accessible: No such file or directory.\n"
    failure = classify_ssh_output(missing).failure
    assert failure.kind is FailureKind.KEY_FILE_NOT_FOUND
    assert failure.detail == '/tmp/nokey'
    assert failure.message == 'Key file not found: /tmp/nokey'


def test_command_probe_builds_batch_mode_command():
    probe = SSHCommandProbe(timeout=3, config_path='/tmp/cfg')
    cmd = probe.build_command(Host(alias='web'))
    assert cmd[0] == 'ssh'
    assert 'BatchMode=yes' in cmd
    assert 'ConnectTimeout=3' in cmd
    assert cmd[-4:] == ['-F', '/tmp/cfg', 'web', 'true']


def test_command_probe_success(monkeypatch):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append((cmd, kwargs))
        return SimpleNamespace(returncode=0, stdout='')

    monkeypatch.setattr(connection_test.subprocess, 'run', fake_run)
    result = SSHCommandProbe(timeout=2)(Host(alias='web'))
    assert result.ok
    assert result.latency is not None
    assert calls[0][1]['stdin'] is subprocess.DEVNULL
    assert calls[0][1]['timeout'] == 7


def test_command_probe_classifies_failure(monkeypatch):
    monkeypatch.setattr(
        connection_test.subprocess, 'run',
        lambda cmd, **kwargs: SimpleNamespace(returncode=255, stdout='Permission denied (publickey).'),
    )
    result = SSHCommandProbe()(Host(alias='web'))
    assert result.failure.kind is FailureKind.PERMISSION_DENIED


def test_command_probe_timeout_and_missing_binary(monkeypatch):
    def timeout(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs['timeout'])

    monkeypatch.setattr(connection_test.subprocess, 'run', timeout)
    assert SSHCommandProbe()(Host(alias='web')).failure.kind is FailureKind.CONNECTION_TIMEOUT

    def missing(cmd, **kwargs):
        raise FileNotFoundError('ssh')

    monkeypatch.setattr(connection_test.subprocess, 'run', missing)
    assert SSHCommandProbe()(Host(alias='web')).failure.kind is FailureKind.UNKNOWN


def _fake_clients(monkeypatch, connect_side_effect=None):
    clients = []

    def factory():
        client = MagicMock()
        if connect_side_effect is not None:
            client.connect.side_effect = connect_side_effect
        clients.append(client)
        return client

    monkeypatch.setattr(connection_test.paramiko, 'SSHClient', factory)
    return clients


def test_paramiko_probe_connects_through_jump_chain(monkeypatch):
    clients = _fake_clients(monkeypatch)
    bastion = Host(alias='bastion', hostname='b.example.com', user='ops')
    host = Host(alias='app', hostname='10.0.0.9', port=2200, jump_hosts=[JumpHost.reference(bastion)])
    result = ParamikoProbe(timeout=4, resolver=JumpChainResolver([bastion, host]))(host)
    assert result.ok
    jump, target = clients
    assert jump.connect.call_args.kwargs['hostname'] == 'b.example.com'
    assert jump.connect.call_args.kwargs['username'] == 'ops'
    channel = jump.get_transport.return_value.open_channel
    channel.assert_called_once_with('direct-tcpip', ('10.0.0.9', 2200), ('127.0.0.1', 0))
    assert target.connect.call_args.kwargs['sock'] is channel.return_value
    jump.close.assert_called_once()
    target.close.assert_called_once()


@pytest.mark.parametrize('error,kind', [
    (paramiko.AuthenticationException('no'), FailureKind.PERMISSION_DENIED),
    (socket.gaierror('no such host'), FailureKind.UNKNOWN_HOST),
    (socket.timeout('slow'), FailureKind.CONNECTION_TIMEOUT),
    (paramiko.SSHException('banner'), FailureKind.UNKNOWN),
])
def test_paramiko_probe_maps_errors(monkeypatch, error, kind):
    clients = _fake_clients(monkeypatch, connect_side_effect=error)
    result = ParamikoProbe()(Host(alias='app', hostname='h'))
    assert result.failure.kind is kind
    clients[0].close.assert_called_once()


def test_paramiko_probe_checks_identity_file(monkeypatch, tmp_path):
    clients = _fake_clients(monkeypatch)
    missing = ParamikoProbe()(Host(alias='a', hostname='h', identity_file=str(tmp_path / 'nokey')))
    assert missing.failure.kind is FailureKind.KEY_FILE_NOT_FOUND

    key = tmp_path / 'id_test'
    key.write_text('key')
    os.chmod(key, 0o644)
    loose = ParamikoProbe()(Host(alias='a', hostname='h', identity_file=str(key)))
    assert loose.failure.kind is FailureKind.KEY_FILE_WRONG_PERMISSIONS
    assert clients == []

    os.chmod(key, 0o600)
    assert ParamikoProbe()(Host(alias='a', hostname='h', identity_file=str(key))).ok
    assert clients[0].connect.call_args.kwargs['key_filename'] == str(key)


def test_make_probe():
    assert isinstance(make_probe('command'), SSHCommandProbe)
    assert isinstance(make_probe('paramiko'), ParamikoProbe)
    with pytest.raises(ValueError):
        make_probe('telnet')
