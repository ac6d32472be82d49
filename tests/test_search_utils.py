from types import SimpleNamespace

from sshmanager.search_utils import host_matches


def _host(**kwargs):
    values = {'alias': '', 'hostname': '', 'user': '', 'tags': set()}
    values.update(kwargs)
    return SimpleNamespace(**values)


def test_blank_query_matches_everything():
    host = _host(alias='web')
    assert host_matches(host, '')
    assert host_matches(host, '   ')


def test_matches_each_field_case_insensitively():
    host = _host(alias='Web01', hostname='example.COM', user='Deploy', tags={'Prod'})
    assert host_matches(host, 'web0')
    assert host_matches(host, 'example.com')
    assert host_matches(host, 'deploy')
    assert host_matches(host, 'prod')
    assert not host_matches(host, 'staging')


def test_missing_fields_do_not_break_matching():
    assert not host_matches(SimpleNamespace(alias=None), 'x')
