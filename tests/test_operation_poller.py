from __future__ import annotations

import itertools

import httpx

from epolicy.clients.network_injection import NetworkInjectionClient
from epolicy.errors import HttpError
from epolicy.models.admin import AsyncOperationStatus
from epolicy.models.linkage import OperationStatus
from epolicy.utils.operation_poller import OperationPoller


class ScriptedSource:
    def __init__(self, *responses: object) -> None:
        self._responses = list(responses)
        self.calls: list[str] = []

    def get_operation_status(self, operation_location: str) -> AsyncOperationStatus:
        self.calls.append(operation_location)
        response = self._responses[min(len(self.calls), len(self._responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return AsyncOperationStatus.model_validate(response)


def test_poll_until_succeeded(monkeypatch):
    sleeps: list[float] = []
    monkeypatch.setattr("epolicy.utils.operation_poller.time.sleep", sleeps.append)
    source = ScriptedSource({"status": "Running"}, {"status": "Succeeded"})

    result = OperationPoller(source).poll("https://x/op/1", timeout_seconds=60, interval_seconds=5)

    assert result.final_status is OperationStatus.SUCCEEDED
    assert result.iterations == 2
    assert sleeps == [5, 5]
    assert source.calls == ["https://x/op/1", "https://x/op/1"]


def test_terminal_states_are_case_insensitive(no_sleep):
    for raw, expected in (
        ("failed", OperationStatus.FAILED),
        ("CANCELLED", OperationStatus.CANCELED),
        ("Canceled", OperationStatus.CANCELED),
    ):
        result = OperationPoller(ScriptedSource({"status": raw})).poll("op", 60, 1)
        assert result.final_status is expected
        assert result.iterations == 1


def test_state_and_provisioning_state_fields_are_read(no_sleep):
    result = OperationPoller(ScriptedSource({"provisioningState": "Succeeded"})).poll("op", 60, 1)

    assert result.final_status is OperationStatus.SUCCEEDED


def test_transient_errors_keep_polling(no_sleep):
    source = ScriptedSource(
        HttpError(503, "Service Unavailable"),
        httpx.ReadTimeout("slow"),
        {"status": "Succeeded"},
    )

    result = OperationPoller(source).poll("op", 60, 1)

    assert result.final_status is OperationStatus.SUCCEEDED
    assert result.iterations == 3


def test_non_terminal_state_times_out(monkeypatch, no_sleep):
    clock = itertools.chain([0.0, 5.0, 10.0], itertools.repeat(10.0))
    monkeypatch.setattr("epolicy.utils.operation_poller.time.time", lambda: next(clock))

    result = OperationPoller(ScriptedSource({"status": "Running"})).poll(
        "op", timeout_seconds=10, interval_seconds=5
    )

    assert result.final_status is OperationStatus.TIMED_OUT
    assert result.iterations == 2


def test_timeout_is_bounded_by_timeout_plus_interval(monkeypatch):
    now = {"t": 0.0}

    def fake_sleep(seconds: float) -> None:
        now["t"] += seconds

    monkeypatch.setattr("epolicy.utils.operation_poller.time.sleep", fake_sleep)
    monkeypatch.setattr("epolicy.utils.operation_poller.time.time", lambda: now["t"])

    result = OperationPoller(ScriptedSource({"status": "InProgress"})).poll("op", 30, 7)

    assert result.final_status is OperationStatus.TIMED_OUT
    assert now["t"] <= 30 + 7


def test_retry_after_on_status_endpoint_does_not_extend_timeout(monkeypatch, respx_mock):
    now = {"t": 0.0}

    def fake_sleep(seconds: float) -> None:
        now["t"] += seconds

    monkeypatch.setattr("epolicy.utils.operation_poller.time.sleep", fake_sleep)
    monkeypatch.setattr("epolicy.utils.operation_poller.time.time", lambda: now["t"])
    monkeypatch.setattr("epolicy.http_client.time.sleep", fake_sleep)
    route = respx_mock.get("https://admin.test/operations/op-1").mock(
        return_value=httpx.Response(503, headers={"Retry-After": "120"})
    )
    client = NetworkInjectionClient(lambda: "token", base_url="https://admin.test/providers/x")

    result = OperationPoller(client).poll("/operations/op-1", timeout_seconds=10, interval_seconds=1)

    assert result.final_status is OperationStatus.TIMED_OUT
    assert now["t"] <= 10 + 1
    assert route.call_count == result.iterations
