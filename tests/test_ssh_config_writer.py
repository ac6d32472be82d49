from sshmanager.jump_hosts import JumpChainResolver
from sshmanager.models import Host, JumpHost
from sshmanager.port_forwarding import PortForward
from sshmanager.ssh_config_utils import format_host_entry, format_ssh_config, parse_hosts


def test_minimal_block_layout():
    host = Host(alias='db1', hostname='10.0.0.5', user='root')
    assert format_host_entry(host) == "Host db1\n  HostName 10.0.0.5\n  User root\n\n"


def test_default_port_is_omitted_and_custom_port_written():
    assert 'Port' not in format_host_entry(Host(alias='a', hostname='h', port=22))
    assert '  Port 2222\n' in format_host_entry(Host(alias='a', hostname='h', port=2222))


def test_hostname_is_written_even_when_empty():
    assert format_host_entry(Host(alias='a')) == "Host a\n  HostName \n\n"


def test_options_are_sorted_and_capitalized():
    host = Host(alias='a', hostname='h', options={'serveraliveinterval': '60', 'compression': 'yes'})
    text = format_host_entry(host)
    assert text.index('  Compression yes') < text.index('  Serveraliveinterval 60')


def test_proxy_jump_and_forwards_follow_options():
    bastion = Host(alias='bastion', hostname='b.example.com')
    host = Host(
        alias='app',
        hostname='10.0.0.9',
        options={'forwardagent': 'yes'},
        jump_hosts=[JumpHost.reference(bastion), JumpHost.manual('edge', user='admin', port=2222)],
        port_forwards=[
            PortForward.local(8080, 'localhost', 80),
            PortForward.dynamic(1080, is_active=False),
            PortForward.local(0, 'localhost', 80),
        ],
    )
    text = format_host_entry(host, JumpChainResolver([bastion, host]))
    assert text == (
        "Host app\n"
        "  HostName 10.0.0.9\n"
        "  Forwardagent yes\n"
        "  ProxyJump bastion,admin@edge:2222\n"
        "  LocalForward 8080 localhost:80\n"
        "\n"
    )


def test_format_skips_hosts_without_alias():
    text = format_ssh_config([Host(alias='', hostname='x'), Host(alias='ok', hostname='y')])
    assert text == "Host ok\n  HostName y\n\n"


def test_round_trip_is_stable():
    original = (
        "Host bastion\n"
        "  HostName bastion.example.com\n"
        "  User ops\n"
        "Host app\n"
        "  HostName 10.0.0.9\n"
        "  Port 2200\n"
        "  IdentityFile ~/.ssh/app\n"
        "  ServerAliveInterval 30\n"
        "  LocalForward 5432 db.internal:5432\n"
        "  RemoteForward 9000 localhost:3000\n"
        "  ProxyJump bastion\n"
    )
    first = format_ssh_config(parse_hosts(original))
    second = format_ssh_config(parse_hosts(first))
    assert first == second

    hosts = parse_hosts(first)
    app = hosts[1]
    assert app.port == 2200
    assert app.identity_file == '~/.ssh/app'
    assert app.options == {'serveraliveinterval': '30'}
    assert [f.to_config_string() for f in app.port_forwards] == [
        'LocalForward 5432 db.internal:5432',
        'RemoteForward 9000 localhost:3000',
    ]
    assert app.jump_hosts[0].referenced_host_id == hosts[0].id


def test_reference_to_removed_host_uses_stored_alias():
    bastion = Host(alias='bastion', hostname='b')
    host = Host(alias='app', hostname='a', jump_hosts=[JumpHost.reference(bastion)])
    assert "  ProxyJump bastion\n" in format_ssh_config([host])


def test_minimal_block_parses_back():
    host = Host(alias='db1', hostname='10.0.0.5', user='root')
    parsed = parse_hosts(format_host_entry(host))[0]
    assert parsed == host
    assert parsed.identity_file == ''
    assert parsed.port == 22


def test_explicit_default_port_is_dropped_on_save():
    text = format_ssh_config(parse_hosts("Host a\n  HostName h\n  Port 22\n"))
    assert text == "Host a\n  HostName h\n\n"
