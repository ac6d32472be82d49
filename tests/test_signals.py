import pytest

from sshmanager.signals import REGISTRY_SIGNALS, RegistrySignals, Signal


def test_signal_connect_emit_disconnect():
    calls = []
    signal = Signal('changed')
    signal.connect(calls.append)
    signal.connect(calls.append)
    assert len(signal) == 1
    signal.emit('x')
    signal.disconnect(calls.append)
    signal.disconnect(calls.append)
    signal.emit('y')
    assert calls == ['x']


def test_registry_signals_cover_all_events():
    signals = RegistrySignals()
    assert signals.names() == list(REGISTRY_SIGNALS)
    assert 'host-added' in signals
    with pytest.raises(KeyError):
        signals.emit('no-such-signal')
