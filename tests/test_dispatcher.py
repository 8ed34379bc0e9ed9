"""
Tests for the serial Command Dispatcher.
"""

from raptor.core.commands import Command
from raptor.core.control_state import Direction
from raptor.core.dispatcher import CommandDispatcher
from raptor.modules.coil_writer import CoilWriter

SPEED = 121
DIRECTION = 226
WHEELS_COIL = 50065
CHAIN_COIL = 50066


class TestFieldHandling:

    def test_speed_only_touches_nothing_else(self, dispatcher, simulator):
        dispatcher.process(Command(wheel_speed=800))
        assert simulator.main.coil_log == []
        assert simulator.main.write_log == []
        assert simulator.inner.write_log == [(SPEED, 800)]
        assert all(addr != DIRECTION for addr, _ in simulator.outer.write_log)

    def test_empty_command_writes_nothing(self, dispatcher, simulator):
        dispatcher.process(Command())
        for drive in simulator.drives.values():
            assert drive.write_log == []
            assert drive.coil_log == []
        assert simulator.inner.connections_opened == 0
        assert simulator.outer.connections_opened == 0

    def test_run_coils(self, dispatcher, simulator):
        dispatcher.process(Command(wheels_running=True, chain_running=False))
        assert simulator.main.coil_log == [(WHEELS_COIL, True), (CHAIN_COIL, False)]
        assert simulator.inner.is_running
        assert not simulator.main.is_running

    def test_chain_speed(self, dispatcher, simulator, store):
        dispatcher.process(Command(chain_speed=1500))
        assert simulator.main.register(SPEED) == 1200
        assert store.current().chain_speed == 1200
        assert simulator.inner.write_log == []

    def test_chain_speed_failure_keeps_state(self, dispatcher, simulator, store):
        simulator.main.fail_writes = True
        dispatcher.process(Command(chain_speed=500))
        assert store.current().chain_speed == 420

    def test_direction(self, dispatcher, simulator, store):
        dispatcher.process(Command(wheel_direction="rev"))
        assert store.current().direction is Direction.REVERSE
        assert simulator.inner.register(DIRECTION) == 1

    def test_direction_ignored_when_disabled(self, main_drive, locked_coordinator, chain_writer, simulator, store):
        dispatcher = CommandDispatcher(CoilWriter(main_drive), locked_coordinator, chain_writer)
        dispatcher.process(Command(wheel_direction="rev", wheel_speed=900))
        assert store.current().direction is Direction.FORWARD
        assert store.current().direction_warning == ""
        assert simulator.inner.write_log == [(SPEED, 900)]

    def test_failure_does_not_block_other_fields(self, dispatcher, simulator, store):
        simulator.main.fail_writes = True
        dispatcher.process(Command(
            wheels_running=True, chain_running=True,
            wheel_direction="rev", wheel_speed=1000, chain_speed=300,
        ))
        assert simulator.main.coil_log == []
        assert store.current().direction is Direction.REVERSE
        assert store.current().wheel_speed == 1000
        assert store.current().chain_speed == 420
        assert dispatcher.processed_count == 1

    def test_field_order(self, dispatcher, simulator):
        simulator.inner.write_log.clear()
        dispatcher.process(Command(wheel_speed=700, wheel_direction="rev"))
        assert simulator.inner.write_log == [(DIRECTION, 1), (SPEED, 700)]


class TestQueue:

    def test_commands_processed_in_order(self, dispatcher, simulator, store):
        dispatcher.start()
        try:
            for speed in (700, 800, 900):
                assert dispatcher.submit(Command(wheel_speed=speed))
            dispatcher.join()
        finally:
            dispatcher.stop()
        assert simulator.inner.write_log == [(SPEED, 700), (SPEED, 800), (SPEED, 900)]
        assert store.current().wheel_speed == 900
        assert dispatcher.processed_count == 3

    def test_full_queue_waits_for_room(self, dispatcher, simulator):
        dispatcher = _small_dispatcher(dispatcher, queue_size=1)
        simulator.inner.write_delay_sec = 0.1
        simulator.outer.write_delay_sec = 0.1
        dispatcher.start()
        try:
            for speed in (700, 800, 900):
                assert dispatcher.submit(Command(wheel_speed=speed))
            dispatcher.join()
        finally:
            dispatcher.stop()
        assert simulator.inner.write_log == [(SPEED, 700), (SPEED, 800), (SPEED, 900)]
        assert dispatcher.dropped_count == 0

    def test_setpoint_dropped_after_submit_timeout(self, dispatcher):
        dispatcher = _small_dispatcher(dispatcher, queue_size=2, submit_timeout=0.05)
        assert dispatcher.submit(Command(wheel_speed=100))
        assert dispatcher.submit(Command(wheel_speed=200))
        assert not dispatcher.submit(Command(wheel_speed=300))
        assert dispatcher.dropped_count == 1
        assert dispatcher.pending == 2

    def test_run_command_waits_past_submit_timeout(self, dispatcher, simulator):
        dispatcher = _small_dispatcher(dispatcher, queue_size=1, submit_timeout=0.05)
        simulator.inner.write_delay_sec = 0.2
        simulator.outer.write_delay_sec = 0.2
        dispatcher.start()
        try:
            assert dispatcher.submit(Command(wheel_speed=700), timeout=5.0)
            assert dispatcher.submit(Command(wheel_speed=800), timeout=5.0)
            assert dispatcher.submit(Command(wheels_running=False))
            dispatcher.join()
        finally:
            dispatcher.stop()
        assert simulator.main.coil_log == [(WHEELS_COIL, False)]
        assert dispatcher.dropped_count == 0

    def test_run_command_dropped_without_consumer(self, dispatcher):
        dispatcher = _small_dispatcher(dispatcher, queue_size=1, submit_timeout=0.05)
        assert dispatcher.submit(Command(wheel_speed=100))
        assert not dispatcher.submit(Command(chain_running=False))
        assert dispatcher.dropped_count == 1

    def test_start_stop(self, dispatcher):
        dispatcher.start()
        assert dispatcher.is_running
        dispatcher.stop()
        assert not dispatcher.is_running

    def test_stop_drains_queued_commands(self, dispatcher, simulator):
        for speed in (700, 800, 900):
            dispatcher.submit(Command(wheel_speed=speed))
        dispatcher.start()
        dispatcher.stop()
        assert dispatcher.processed_count == 3
        assert simulator.inner.write_log[-1] == (SPEED, 900)

    def test_stop_timeout_leaves_consumer_running(self, dispatcher, simulator):
        simulator.inner.write_delay_sec = 0.5
        simulator.outer.write_delay_sec = 0.5
        dispatcher.submit(Command(wheel_speed=700))
        dispatcher.start()
        dispatcher.stop(timeout=0.05)
        assert dispatcher.is_running
        dispatcher.stop()
        assert not dispatcher.is_running
        assert dispatcher.processed_count == 1


def _small_dispatcher(template, queue_size, submit_timeout=30.0):
    return CommandDispatcher(
        template.coils, template.wheels, template.chain,
        queue_size=queue_size, submit_timeout=submit_timeout,
    )
