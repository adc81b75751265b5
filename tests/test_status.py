from __future__ import annotations

import logging

import pytest

from textlint_client.core.output import OutputChannel
from textlint_client.core.status import StatusAggregator, StatusSnapshot
from textlint_client.core.types import SUPPORT_LANGUAGES, Severity, StatusEvent


@pytest.fixture
def status(output: OutputChannel) -> StatusAggregator:
    return StatusAggregator(SUPPORT_LANGUAGES, output)


def test_initial_state(status: StatusAggregator) -> None:
    assert status.snapshot() == StatusSnapshot(severity=Severity.OK, busy=False, server_running=False)


def test_enabled_only_for_supported_languages(status: StatusAggregator) -> None:
    assert status.is_enabled_for("markdown")
    assert status.is_enabled_for("doctex")
    assert not status.is_enabled_for("python")


def test_emits_only_on_change(status: StatusAggregator) -> None:
    snapshots: list[StatusSnapshot] = []
    status.on_change(snapshots.append)

    status.set_status(Severity.WARN)
    status.set_status(Severity.WARN)
    status.set_status(Severity.OK)

    assert [snapshot.severity for snapshot in snapshots] == [Severity.WARN, Severity.OK]


def test_nested_progress_is_not_counted(status: StatusAggregator) -> None:
    snapshots: list[StatusSnapshot] = []
    status.on_change(snapshots.append)

    status.start_progress()
    status.start_progress()
    status.stop_progress()
    status.stop_progress()

    assert [snapshot.busy for snapshot in snapshots] == [True, False]


def test_server_running_is_observable(status: StatusAggregator) -> None:
    snapshots: list[StatusSnapshot] = []
    status.on_change(snapshots.append)

    status.server_running = True
    status.server_running = True

    assert snapshots == [StatusSnapshot(severity=Severity.OK, busy=False, server_running=True)]


def test_message_is_logged_at_severity(status: StatusAggregator, output: OutputChannel) -> None:
    status.set_status(Severity.OK, "lint finished")
    status.set_status(Severity.ERROR, "textlint crashed", RuntimeError("rule failed"))

    assert output.lines == [
        "[Info] lint finished",
        "[Error] textlint crashed\nRuntimeError: rule failed",
    ]


def test_without_output_logs_to_module_logger(caplog: pytest.LogCaptureFixture) -> None:
    status = StatusAggregator(SUPPORT_LANGUAGES)

    with caplog.at_level(logging.WARNING, logger="textlint_client"):
        status.set_status(Severity.WARN, "No textlint configuration found.")

    assert "No textlint configuration found." in caplog.text


def test_failing_listener_does_not_block_others(status: StatusAggregator) -> None:
    snapshots: list[StatusSnapshot] = []

    def broken(_: StatusSnapshot) -> None:
        raise RuntimeError("listener failed")

    status.on_change(broken)
    remove = status.on_change(snapshots.append)

    status.set_status(Severity.ERROR)
    remove()
    status.set_status(Severity.OK)

    assert [snapshot.severity for snapshot in snapshots] == [Severity.ERROR]


def test_apply_status_event(status: StatusAggregator, output: OutputChannel) -> None:
    status.apply(StatusEvent(severity=Severity.WARN, message="1 problem"))

    assert status.severity is Severity.WARN
    assert output.lines == ["[Warning] 1 problem"]
