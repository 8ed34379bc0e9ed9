"""
Integration tests for the bridge wiring, using the drive simulator
and an in-memory transport.
"""

import json

import pytest

from raptor.core.bridge import RaptorBridge
from raptor.core.commands import Command
from raptor.core.control_state import Direction


class FakeTransport:
    def __init__(self):
        self.published = []
        self.subscriptions = {}

    def publish(self, topic, payload, qos=1, retain=False):
        self.published.append((topic, payload, qos, retain))

    def subscribe(self, topic, handler, qos=1):
        self.subscriptions[topic] = handler


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def bridge(settings, transport, simulator):
    b = RaptorBridge(settings, transport=transport, client_factory=simulator.client_factory)
    assert b.connect_drives()
    return b


class TestRaptorBridge:

    def test_initial_state_from_settings(self, settings, simulator):
        settings.wheel_speed_default = 550
        b = RaptorBridge(settings, client_factory=simulator.client_factory)
        assert b.store.current().wheel_speed == 550
        assert b.store.current().chain_speed == 420
        assert not b.policy.direction_control
        assert b.dispatcher.submit_timeout == settings.command_submit_timeout_sec

    def test_main_drive_unreachable(self, settings, simulator):
        simulator.main.refuse_connect = True
        b = RaptorBridge(settings, client_factory=simulator.client_factory)
        assert not b.connect_drives()

    def test_handle_message_queues_command(self, bridge):
        assert bridge.handle_message(bridge.settings.cmd_topic, b'{"wheel_speed": 700}')
        assert bridge.dispatcher.pending == 1

    def test_bad_payloads_rejected(self, bridge):
        assert not bridge.handle_message("t", b"{oops")
        assert not bridge.handle_message("t", b'{"wheel_speed": "fast"}')
        assert not bridge.handle_message("t", b"{}")
        assert bridge.dispatcher.pending == 0

    def test_publish_to_state_topic(self, bridge, transport):
        bridge.poller.tick()
        topic, payload, qos, retain = transport.published[-1]
        assert topic == "raptor/shop/revpi-135593/state"
        assert qos == 1
        assert retain is False
        assert json.loads(payload)["seq"] == 1

    def test_command_reflected_in_next_snapshot(self, bridge, transport, simulator):
        bridge.dispatcher.start()
        try:
            bridge.handle_message("t", b'{"wheels_running": true, "wheel_speed": 800, "chain_speed": 350}')
            bridge.dispatcher.join()
        finally:
            bridge.dispatcher.stop()

        data = json.loads(bridge.poller.tick().to_json())
        assert data["wheels_running"] is True
        assert data["wheel_speed"] == 800
        assert data["chain_speed"] == 350
        assert simulator.outer.register(121) == round(800 * 0.9167)

    def test_direction_control_from_settings(self, settings, simulator):
        settings.direction_control = True
        b = RaptorBridge(settings, client_factory=simulator.client_factory)
        b.connect_drives()
        b.dispatcher.process(Command(wheel_direction="rev"))
        assert b.store.current().direction is Direction.REVERSE

    def test_start_subscribes_and_stop(self, bridge, transport):
        bridge.start()
        try:
            assert bridge.settings.cmd_topic in transport.subscriptions
            assert bridge.dispatcher.is_running
            assert bridge.poller.is_running
        finally:
            bridge.stop()
        assert not bridge.dispatcher.is_running
        assert not bridge.poller.is_running
        assert not bridge.main.is_connected
