"""
Tests for inbound command parsing.
"""

import pytest

from raptor.core.commands import Command, CommandRejected, parse_command


class TestParseCommand:

    def test_full_command(self):
        cmd = parse_command(
            b'{"wheels_running": true, "chain_running": false, '
            b'"wheel_direction": "rev", "wheel_speed": 800, "chain_speed": 400}'
        )
        assert cmd == Command(True, False, "rev", 800, 400)

    def test_subset_leaves_other_fields_absent(self):
        cmd = parse_command(b'{"wheel_speed": 700}')
        assert cmd.wheel_speed == 700
        assert cmd.wheels_running is None
        assert cmd.chain_running is None
        assert cmd.wheel_direction is None
        assert cmd.chain_speed is None

    def test_null_is_absent(self):
        cmd = parse_command('{"wheels_running": null, "chain_speed": 300}')
        assert cmd.wheels_running is None
        assert cmd.chain_speed == 300

    def test_unknown_direction_is_kept_for_normalization(self):
        assert parse_command(b'{"wheel_direction": "sideways"}').wheel_direction == "sideways"

    def test_empty_object(self):
        assert parse_command(b"{}").is_empty
        assert not parse_command(b'{"chain_running": false}').is_empty

    def test_run_command_detection(self):
        assert parse_command(b'{"wheels_running": false}').carries_run_command
        assert parse_command(b'{"chain_running": true, "chain_speed": 300}').carries_run_command
        assert not parse_command(b'{"wheel_speed": 700}').carries_run_command

    @pytest.mark.parametrize("payload", [
        b"not json",
        b"[1, 2]",
        b'"wheel_speed"',
        b'{"wheels_running": 1}',
        b'{"wheel_speed": "800"}',
        b'{"wheel_speed": 80.5}',
        b'{"wheel_speed": true}',
        b'{"wheel_speed": -1}',
        b'{"chain_speed": 70000}',
        b'{"wheel_direction": 1}',
        b"\xff\xfe",
    ])
    def test_rejected_payloads(self, payload):
        with pytest.raises(CommandRejected):
            parse_command(payload)
