"""Tests for the simulation task protocol."""

import queue
import threading

import pytest

from capstack import monte_carlo
from capstack.models import DistributionType, SimulationConfig
from capstack.result import EngineFailure, EngineSuccess
from capstack.scenarios import ScenarioTriadResult
from capstack.tasks import (
    MessageKind,
    SimulationClient,
    SimulationWorker,
    TaskMessage,
    TaskType,
)

TIMEOUT = 60


@pytest.fixture
def progress_log():
    return []


@pytest.fixture
def client(progress_log):
    client = SimulationClient(on_progress=progress_log.append)
    yield client
    client.close()


class TestSimulationClient:
    """Round trips through the worker."""

    def test_monte_carlo_success(self, client, model_input, progress_log):
        config = SimulationConfig(iterations=10, seed=1, progress_interval=5)
        result = client.run(
            TaskType.MONTE_CARLO, {"model_input": model_input, "config": config}, timeout=TIMEOUT
        )

        assert isinstance(result, EngineSuccess)
        assert result.data.completed_iterations == 10
        assert progress_log == [50.0, 100.0]
        assert client.pending_id is None

    def test_scenario_triad_success(self, client, model_input, progress_log):
        result = client.run(TaskType.SCENARIO_TRIAD, {"model_input": model_input}, timeout=TIMEOUT)

        assert result.ok
        assert isinstance(result.data, ScenarioTriadResult)
        assert progress_log == [100.0]

    def test_pert_warning_surfaces(self, client, model_input):
        config = SimulationConfig(iterations=2, seed=1, adr_distribution=DistributionType.PERT)
        result = client.run(
            TaskType.MONTE_CARLO, {"model_input": model_input, "config": config}, timeout=TIMEOUT
        )

        assert result.ok
        assert any("pert" in w for w in result.warnings)

    def test_missing_model_input(self, client):
        result = client.run(TaskType.MONTE_CARLO, {}, timeout=TIMEOUT)

        assert isinstance(result, EngineFailure)
        assert result.code == "CONFIGURATION_ERROR"
        assert result.details["field"] == "model_input"

    def test_invalid_input_reported(self, client, model_input):
        model_input.capital.tranches[0].amortization_years = 0
        result = client.run(TaskType.SCENARIO_TRIAD, {"model_input": model_input}, timeout=TIMEOUT)

        assert result.code == "CONFIGURATION_ERROR"
        assert "amortizationYears must be > 0" in result.message

    def test_iteration_failure_reported(self, client, model_input, monkeypatch):
        calls = {"n": 0}
        real = monte_carlo.run_model_kpis

        def fail_second_iteration(scenario):
            calls["n"] += 1
            if calls["n"] == 3:
                raise ValueError("division by zero")
            return real(scenario)

        monkeypatch.setattr(monte_carlo, "run_model_kpis", fail_second_iteration)
        config = SimulationConfig(iterations=5, seed=1)
        result = client.run(
            TaskType.MONTE_CARLO, {"model_input": model_input, "config": config}, timeout=TIMEOUT
        )

        assert result.code == "SIMULATION_FAILURE"
        assert result.details["iteration"] == 1
        assert result.message == "Iteration 1 failed: division by zero"

    def test_cancel(self, client, model_input):
        config = SimulationConfig(iterations=200, seed=1)
        client.submit(TaskType.MONTE_CARLO, {"model_input": model_input, "config": config})
        client.cancel()
        result = client.wait(TIMEOUT)

        assert result.ok
        assert result.data.completed_iterations <= 200

    def test_wait_without_request(self, client):
        with pytest.raises(RuntimeError, match="No pending request"):
            client.wait(1)


class TestMessageCorrelation:
    """Messages for anything but the pending request are ignored."""

    def test_stale_progress_ignored(self):
        client = SimulationClient()
        try:
            client.pending_id = "current"
            stale = TaskMessage(kind=MessageKind.PROGRESS, id="previous", progress=40.0)

            assert client.handle_message(stale) is None
            assert client.last_progress is None
            assert client.pending_id == "current"
        finally:
            client.close()

    def test_stale_result_ignored(self):
        client = SimulationClient()
        try:
            client.pending_id = "current"
            stale = TaskMessage(kind=MessageKind.SUCCESS, id="previous", payload="old")

            assert client.handle_message(stale) is None
            assert client.pending_id == "current"
        finally:
            client.close()

    def test_wait_skips_stale_messages(self):
        client = SimulationClient()
        try:
            client.pending_id = "current"
            client.channel.put(TaskMessage(kind=MessageKind.SUCCESS, id="previous", payload="old"))
            client.channel.put(TaskMessage(kind=MessageKind.PROGRESS, id="current", progress=50.0))
            client.channel.put(TaskMessage(kind=MessageKind.SUCCESS, id="current", payload="new"))

            result = client.wait(1)
            assert result.data == "new"
            assert client.last_progress == 50.0
        finally:
            client.close()

    def test_wait_times_out(self):
        client = SimulationClient()
        try:
            client.pending_id = "current"
            with pytest.raises(TimeoutError):
                client.wait(0.05)
        finally:
            client.close()


class TestSimulationWorker:
    def test_rejects_non_request(self):
        worker = SimulationWorker(queue.Queue())
        try:
            message = TaskMessage(kind=MessageKind.PROGRESS, id="x", progress=1.0)
            with pytest.raises(ValueError, match="only accepts REQUEST"):
                worker.handle(message, threading.Event())
        finally:
            worker.shutdown()

    def test_unknown_task_reported(self, model_input):
        channel = queue.Queue()
        worker = SimulationWorker(channel)
        try:
            request = TaskMessage(
                kind=MessageKind.REQUEST, id="r1", task=None, payload={"model_input": model_input}
            )
            worker.handle(request, threading.Event()).result(timeout=TIMEOUT)
            message = channel.get(timeout=1)

            assert message.kind == MessageKind.ERROR
            assert message.id == "r1"
            assert message.error.code == "CONFIGURATION_ERROR"
        finally:
            worker.shutdown()
