from __future__ import annotations

import logging

import pytest

from balancerec.core.errors import DeviceError
from balancerec.core.models import Command, CommandKind, EngineState, NoticeLevel
from balancerec.dataio.csv_writer import format_record

from conftest import FakeSource, sample

START = Command(CommandKind.START)
STOP = Command(CommandKind.STOP)
RESET = Command(CommandKind.RESET_COP)
TARE = Command(CommandKind.TARE)
EXIT = Command(CommandKind.EXIT)


def _tared(controller, source, total: float = 70.0, x: float = 0.0, y: float = 0.0):
    source.emit(sample(total, x, y))
    controller.submit_command(TARE)
    controller.process_pending()
    assert controller.state is EngineState.IDLE
    return controller


def test_attach_requires_connected_source(make_controller) -> None:
    controller = make_controller(attach=False)
    with pytest.raises(DeviceError):
        controller.attach(FakeSource(connected=False))
    assert controller.state is EngineState.DISCONNECTED


def test_tare_moves_connected_to_idle(make_controller, source) -> None:
    controller = make_controller()
    assert controller.state is EngineState.CONNECTED

    _tared(controller, source, total=70.0)

    offset = controller.calibrator.offset
    assert (offset.tare_weight_kg, offset.origin_x, offset.origin_y) == (70.0, 0.0, 0.0)


def test_documented_scenario_produces_expected_row(make_controller, source, clock, recorder) -> None:
    controller = _tared(make_controller(), source, total=70.0)

    controller.submit_command(START)
    controller.process_pending()
    clock.t = 0.1
    source.emit(sample(71.2, 1.0, -0.5))
    controller.process_pending()

    assert recorder.headers == 1
    (record,) = recorder.records
    assert record.weight_kg == pytest.approx(1.2)
    assert record.x == pytest.approx(1.0)
    assert record.y == pytest.approx(-0.5)
    assert record.elapsed_s == pytest.approx(0.1)
    assert format_record(record)[1:] == [
        "0.100", "17.50", "17.50", "17.50", "17.50", "1.20", "1.00", "-0.50",
    ]


def test_samples_while_idle_are_discarded(make_controller, source, recorder) -> None:
    controller = _tared(make_controller(), source)
    for i in range(50):
        source.emit(sample(70.0 + i))
    controller.process_pending()
    assert recorder.rows == []
    assert controller.state is EngineState.IDLE


def test_streaming_records_every_sample_in_order(make_controller, source, clock, recorder) -> None:
    controller = _tared(make_controller(), source)
    controller.submit_command(START)
    for i in range(200):
        clock.t = i * 0.01
        source.emit(sample(70.0, x=float(i)))
    controller.process_pending()

    records = recorder.records
    assert len(records) == 200
    assert [r.x for r in records] == [float(i) for i in range(200)]
    elapsed = [r.elapsed_s for r in records]
    assert elapsed == sorted(elapsed)


def test_command_between_samples_only_affects_later_samples(make_controller, source, recorder) -> None:
    controller = _tared(make_controller(), source)
    controller.submit_command(START)
    source.emit(sample(70.0, 2.0, 3.0))
    controller.submit_command(RESET)
    source.emit(sample(70.0, 2.0, 3.0))
    controller.process_pending()

    first, second = recorder.records
    assert (first.x, first.y) == (2.0, 3.0)
    assert (second.x, second.y) == (0.0, 0.0)


def test_start_resets_cop_against_latest_sample(make_controller, source, recorder) -> None:
    controller = _tared(make_controller(), source, x=0.0, y=0.0)
    source.emit(sample(70.0, 4.0, -2.0))
    controller.submit_command(START)
    source.emit(sample(70.0, 4.0, -2.0))
    controller.process_pending()

    (record,) = recorder.records
    assert (record.x, record.y) == (0.0, 0.0)
    assert controller.calibrator.offset.tare_weight_kg == 70.0


def test_start_while_streaming_is_rejected(make_controller, source, clock, recorder, notices) -> None:
    controller = _tared(make_controller(), source)
    controller.submit_command(START)
    controller.process_pending()

    clock.t = 5.0
    controller.submit_command(START)
    clock.t = 6.0
    source.emit(sample())
    controller.process_pending()

    assert recorder.headers == 1
    assert recorder.records[-1].elapsed_s == pytest.approx(6.0)
    assert controller.session.session_id == 1
    assert any(n.level is NoticeLevel.WARNING and "Already streaming" in n.message for n in notices)


def test_start_before_tare_is_rejected(make_controller, source, recorder, notices) -> None:
    controller = make_controller()
    source.emit(sample())
    controller.submit_command(START)
    controller.process_pending()

    assert controller.state is EngineState.CONNECTED
    assert recorder.headers == 0
    assert notices[-1].level is NoticeLevel.WARNING


def test_stop_while_idle_is_a_no_op(make_controller, source, notices) -> None:
    controller = _tared(make_controller(), source)
    controller.submit_command(STOP)
    controller.process_pending()
    assert controller.state is EngineState.IDLE
    assert notices[-1].message == "No active session to stop."


def test_stop_ends_session_and_later_start_writes_new_header(make_controller, source, clock, recorder) -> None:
    controller = _tared(make_controller(), source)
    controller.submit_command(START)
    source.emit(sample())
    controller.submit_command(STOP)
    source.emit(sample())
    clock.t = 10.0
    controller.submit_command(START)
    clock.t = 10.5
    source.emit(sample())
    controller.process_pending()

    assert recorder.headers == 2
    assert len(recorder.records) == 2
    assert recorder.records[-1].elapsed_s == pytest.approx(0.5)
    assert controller.session.session_id == 2


def test_simple_deadline_ends_session_at_sixty_seconds(make_controller, source, clock, recorder, notices) -> None:
    controller = _tared(make_controller(), source)
    controller.submit_command(START)
    controller.process_pending()

    period = 0.05
    stamps = [k * period for k in range(1, 1250)]
    for t in stamps:
        clock.t = t
        source.emit(sample())
    controller.process_pending()

    expected = [t for t in stamps if t < 60.0]
    assert [r.elapsed_s for r in recorder.records] == pytest.approx(expected)
    assert controller.state is EngineState.IDLE
    assert ">> 60 seconds complete. Streaming stopped." in [n.message for n in notices]


def test_complex_deadline_without_samples(make_controller, source, clock) -> None:
    controller = _tared(make_controller(), source)
    controller.submit_command(Command(CommandKind.START, task="complex"))
    controller.process_pending()
    assert controller.session.task.duration_s == 39.0

    clock.t = 38.999
    controller.process_pending()
    assert controller.state is EngineState.STREAMING

    clock.t = 39.0
    controller.process_pending()
    assert controller.state is EngineState.IDLE


def test_stale_deadline_does_not_end_newer_session(make_controller, source, clock) -> None:
    controller = _tared(make_controller(), source)
    controller.submit_command(START)
    clock.t = 10.0
    controller.submit_command(STOP)
    clock.t = 20.0
    controller.submit_command(START)
    controller.process_pending()

    clock.t = 61.0
    controller.process_pending()
    assert controller.state is EngineState.STREAMING
    assert controller.session.session_id == 2

    clock.t = 80.0
    controller.process_pending()
    assert controller.state is EngineState.IDLE


def test_unknown_task_is_rejected(make_controller, source, recorder, notices) -> None:
    controller = _tared(make_controller(), source)
    controller.submit_command(Command(CommandKind.START, task="juggling"))
    controller.process_pending()
    assert controller.state is EngineState.IDLE
    assert recorder.headers == 0
    assert "Unknown task" in notices[-1].message


def test_reset_cop_before_tare_gives_untared_but_zeroed_cop(make_controller, source) -> None:
    # Allowed on purpose: CoP can be zeroed while the weight stays raw.
    controller = make_controller()
    source.emit(sample(65.0, 2.5, -1.5))
    controller.submit_command(RESET)
    controller.process_pending()

    assert controller.state is EngineState.CONNECTED
    offset = controller.calibrator.offset
    assert not offset.tared
    adjusted = controller.calibrator.adjust(sample(65.0, 2.5, -1.5))
    assert (adjusted.weight_kg, adjusted.x, adjusted.y) == (65.0, 0.0, 0.0)


def test_reset_cop_without_any_sample_warns(make_controller, notices) -> None:
    controller = make_controller()
    controller.submit_command(RESET)
    controller.process_pending()
    assert notices[-1].level is NoticeLevel.WARNING


def test_write_failure_drops_one_record_and_keeps_streaming(make_controller, source, recorder, notices) -> None:
    controller = _tared(make_controller(), source)
    controller.submit_command(START)
    recorder.fail_next = 1
    source.emit(sample(71.0))
    source.emit(sample(72.0))
    controller.process_pending()

    assert controller.state is EngineState.STREAMING
    assert [r.weight_kg for r in recorder.records] == [pytest.approx(2.0)]
    assert controller.session.dropped_count == 1
    assert controller.session.record_count == 1
    assert any(n.level is NoticeLevel.ERROR for n in notices)


def test_write_failure_stop_policy_returns_to_idle(make_controller, source, recorder) -> None:
    controller = _tared(make_controller(on_write_error="stop"), source)
    controller.submit_command(START)
    recorder.fail_next = 1
    source.emit(sample(71.0))
    source.emit(sample(72.0))
    controller.process_pending()

    assert controller.state is EngineState.IDLE
    assert recorder.records == []


def test_header_failure_keeps_engine_idle(make_controller, source, recorder, notices) -> None:
    controller = _tared(make_controller(), source)
    recorder.fail_header = True
    controller.submit_command(START)
    source.emit(sample())
    controller.process_pending()

    assert controller.state is EngineState.IDLE
    assert recorder.records == []
    assert notices[-1].level is NoticeLevel.ERROR


def test_disconnect_mid_session_closes_recorder_then_shuts_down(make_controller, source, recorder, notices) -> None:
    controller = _tared(make_controller(), source)
    controller.submit_command(START)
    source.emit(sample())
    source.drop(DeviceError("link lost"))
    controller.process_pending()

    assert controller.state is EngineState.SHUTDOWN
    assert recorder.closed
    assert source.closed
    assert len(recorder.records) == 1
    assert notices[-1].level is NoticeLevel.ERROR
    assert "link lost" in notices[-1].message
    assert controller.wait_closed(0)

    source.emit(sample())
    controller.submit_command(START)
    controller.process_pending()
    assert len(recorder.records) == 1
    assert controller.state is EngineState.SHUTDOWN


def test_exit_closes_recorder_and_releases_source(make_controller, source, recorder) -> None:
    controller = _tared(make_controller(), source)
    controller.submit_command(START)
    controller.submit_command(EXIT)
    controller.process_pending()

    assert controller.state is EngineState.SHUTDOWN
    assert recorder.closed
    assert source.closed
    assert controller.session is not None and not controller.session.active


def test_failing_listener_does_not_break_processing(make_controller, source, recorder) -> None:
    controller = make_controller()

    def _boom(_notice) -> None:
        raise RuntimeError("listener bug")

    controller.add_listener(_boom)
    _tared(controller, source)
    controller.submit_command(START)
    source.emit(sample())
    controller.process_pending()
    assert len(recorder.records) == 1


def test_commands_after_shutdown_are_reported_without_consumer(make_controller, source, notices) -> None:
    controller = _tared(make_controller(), source)
    controller.submit_command(EXIT)
    controller.process_pending()
    assert controller.state is EngineState.SHUTDOWN

    before = len(notices)
    controller.submit_command(START)
    assert notices[-1].level is NoticeLevel.WARNING
    assert notices[-1].message == "Recorder has shut down; command ignored."
    assert controller.process_pending() == 0

    controller.request_exit()
    assert len(notices) == before + 1


def test_consumer_survives_unexpected_error(make_controller, source, recorder) -> None:
    controller = _tared(make_controller(), source)
    controller.submit_command(START)
    controller.process_pending()

    original_append = recorder.append
    calls = []

    def _flaky_append(record) -> None:
        calls.append(record)
        if len(calls) == 1:
            raise RuntimeError("unexpected bug")
        original_append(record)

    recorder.append = _flaky_append
    controller.start()
    source.emit(sample(71.0))
    source.emit(sample(72.0))
    controller.request_exit()

    assert controller.wait_closed(2.0)
    controller.join(1.0)
    assert recorder.closed
    assert [r.weight_kg for r in recorder.records] == [pytest.approx(2.0)]


def test_session_summary_reports_sample_period(make_controller, source, clock, caplog) -> None:
    controller = _tared(make_controller(), source)
    controller.submit_command(START)
    for k in range(1, 11):
        clock.t = k * 0.05
        source.emit(sample())
    controller.submit_command(STOP)

    with caplog.at_level(logging.INFO, logger="balancerec.core.session_controller"):
        controller.process_pending()

    assert "10 records, 0 dropped, ~20.0 Hz, sample period 50.0 ms" in caplog.text
