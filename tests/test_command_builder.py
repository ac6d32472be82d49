import pytest

from sshmanager.command_builder import build_ssh_command, format_ssh_command
from sshmanager.jump_hosts import JumpChainResolver
from sshmanager.models import Host, JumpHost
from sshmanager.port_forwarding import PortForward


def test_plain_host_uses_alias():
    assert build_ssh_command(Host(alias='web', hostname='example.com')) == ['ssh', 'web']


def test_custom_port_forwards_and_jumps():
    bastion = Host(alias='bastion', hostname='b')
    host = Host(
        alias='app',
        hostname='10.0.0.9',
        port=2222,
        port_forwards=[
            PortForward.dynamic(1080),
            PortForward.remote(9000, 'localhost', 3000),
            PortForward.local(8080, 'localhost', 80),
            PortForward.local(8081, 'localhost', 81, is_active=False),
        ],
        jump_hosts=[JumpHost.reference(bastion), JumpHost.manual('edge', user='ops')],
    )
    cmd = build_ssh_command(host, JumpChainResolver([bastion, host]))
    assert cmd == [
        'ssh', 'app', '-p', '2222',
        '-L', '8080:localhost:80',
        '-R', '9000:localhost:3000',
        '-D', '1080',
        '-J', 'bastion,ops@edge',
    ]


def test_optional_sections_can_be_left_out():
    host = Host(
        alias='app',
        port_forwards=[PortForward.local(8080, 'localhost', 80)],
        jump_hosts=[JumpHost.manual('edge')],
    )
    assert build_ssh_command(host, include_forwards=False, include_jumps=False) == ['ssh', 'app']


def test_shell_string_is_quoted():
    host = Host(alias='my host')
    assert format_ssh_command(host) == "ssh 'my host'"


def test_missing_alias_is_an_error():
    with pytest.raises(ValueError):
        build_ssh_command(Host(alias=''))
