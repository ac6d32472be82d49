import pytest

from sshmanager.jump_hosts import (
    JumpChainCycleError,
    JumpChainResolver,
    format_manual_hop,
    parse_proxy_jump,
)
from sshmanager.models import Host, JumpHost, JumpHostType


def test_format_manual_hop_omits_defaults():
    assert format_manual_hop('bastion') == 'bastion'
    assert format_manual_hop('bastion', 'ops') == 'ops@bastion'
    assert format_manual_hop('bastion', 'ops', 2222) == 'ops@bastion:2222'
    assert format_manual_hop('fe80::1', port=2222) == '[fe80::1]:2222'


def test_reference_resolves_to_current_alias():
    bastion = Host(alias='bastion', hostname='b.example.com', user='ops', port=2200)
    app = Host(alias='app', hostname='a', jump_hosts=[JumpHost.reference(bastion)])
    bastion.alias = 'gateway'
    resolver = JumpChainResolver([bastion, app])
    hop = resolver.resolve(app)[0]
    assert hop.token == 'gateway'
    assert hop.host_id == bastion.id
    assert hop.describe() == 'ops@b.example.com:2200'
    assert resolver.proxy_jump_directive(app) == 'ProxyJump gateway'


def test_dangling_reference_falls_back_to_alias():
    bastion = Host(alias='bastion', hostname='b')
    app = Host(alias='app', hostname='a', jump_hosts=[JumpHost.reference(bastion)])
    hop = JumpChainResolver([app]).resolve(app)[0]
    assert hop.dangling
    assert hop.token == 'bastion'


def test_invalid_hops_are_skipped():
    app = Host(alias='app', hostname='a', jump_hosts=[
        JumpHost.manual(''),
        JumpHost(type=JumpHostType.REFERENCE),
        JumpHost.manual('edge'),
    ])
    resolver = JumpChainResolver([app])
    assert resolver.proxy_jump_string(app) == 'edge'


def test_no_jump_hosts_gives_empty_directive():
    app = Host(alias='app', hostname='a')
    assert JumpChainResolver([app]).proxy_jump_directive(app) == ''


def test_parse_proxy_jump_tokens():
    bastion = Host(alias='bastion', hostname='b')
    jumps = parse_proxy_jump(' bastion , ops@edge:2222 ,[fe80::1]:22,', [bastion])
    assert len(jumps) == 3
    assert jumps[0].type is JumpHostType.REFERENCE
    assert jumps[0].referenced_host_id == bastion.id
    assert (jumps[1].user, jumps[1].hostname, jumps[1].port) == ('ops', 'edge', 2222)
    assert (jumps[2].hostname, jumps[2].port) == ('fe80::1', 22)


@pytest.mark.parametrize('value', ['', '   ', 'none', 'NONE'])
def test_parse_proxy_jump_empty(value):
    assert parse_proxy_jump(value) == []


def test_display_name_fallbacks():
    assert JumpHost.manual('edge', user='ops').display_name == 'ops@edge'
    assert JumpHost.manual('edge', alias='gw').display_name == 'gw'
    assert JumpHost.manual('').display_name == 'unnamed jump host'


def test_expand_chain_includes_nested_hops():
    outer = Host(alias='outer', hostname='o')
    inner = Host(alias='inner', hostname='i', jump_hosts=[JumpHost.reference(outer)])
    app = Host(alias='app', hostname='a', jump_hosts=[JumpHost.reference(inner)])
    resolver = JumpChainResolver([outer, inner, app])
    assert [hop.token for hop in resolver.expand_chain(app)] == ['outer', 'inner']
    assert resolver.proxy_jump_string(app) == 'inner'


def test_expand_chain_detects_cycles():
    a = Host(alias='a', hostname='a')
    b = Host(alias='b', hostname='b', jump_hosts=[JumpHost.reference(a)])
    a.jump_hosts = [JumpHost.reference(b)]
    with pytest.raises(JumpChainCycleError) as excinfo:
        JumpChainResolver([a, b]).expand_chain(a)
    assert excinfo.value.path == ['a', 'b', 'a']


def test_unresolvable_nameless_reference_is_left_out():
    app = Host(alias='app', hostname='a', jump_hosts=[
        JumpHost(type=JumpHostType.REFERENCE, referenced_host_id='gone'),
        JumpHost.manual('edge'),
    ])
    resolver = JumpChainResolver([app])
    assert [hop.token for hop in resolver.resolve(app)] == ['edge']
    assert [hop.token for hop in resolver.expand_chain(app)] == ['edge']
    assert resolver.proxy_jump_directive(app) == 'ProxyJump edge'
