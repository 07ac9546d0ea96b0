"""Tests for the command line interface."""

import threading
import types

import pytest
from click.testing import CliRunner

from kuberesolver import cli, main
from kuberesolver.kubernetes import EndpointSliceWatcher, InsecureTransport
from kuberesolver.target import ResolverTarget

from conftest import make_event, make_slice


class FakeConfig:
    def __init__(self, _path=None):
        self.path = _path
        self.logging = types.SimpleNamespace(apply=self.apply_logging)
        self.logging_applied = False
        self.accumulate_slices = True
        self.cluster = types.SimpleNamespace(default_namespace="default")

    def apply_logging(self):
        self.logging_applied = True


@pytest.fixture
def recorded_runs(monkeypatch):
    runs = []
    monkeypatch.setattr(cli, "ResolverConfig", FakeConfig)
    monkeypatch.setattr(cli, "run", lambda *args: runs.append(args))
    return runs


class TestWatchCommand:
    def test_watch_through_proxy(self, recorded_runs):
        result = CliRunner().invoke(
            cli.main,
            ["watch", "kubernetes:///orders.team-a:grpc", "--host", "http://127.0.0.1:8001"],
        )

        assert result.exit_code == 0, result.output
        ((config_obj, target, watcher, refresh_interval),) = recorded_runs
        assert config_obj.logging_applied
        assert target == ResolverTarget("team-a", "orders", "grpc")
        assert isinstance(watcher.transport, InsecureTransport)
        assert watcher.transport.host == "http://127.0.0.1:8001"
        assert watcher.namespace == "team-a"
        assert refresh_interval == 5.0

    def test_namespace_option_overrides_target(self, recorded_runs):
        result = CliRunner().invoke(
            cli.main,
            [
                "watch",
                "orders.team-a",
                "--host",
                "http://127.0.0.1:8001",
                "--namespace",
                "team-b",
                "--refresh-interval",
                "0.5",
            ],
        )

        assert result.exit_code == 0, result.output
        ((_, target, watcher, refresh_interval),) = recorded_runs
        assert target == ResolverTarget("team-b", "orders", None)
        assert watcher.namespace == "team-b"
        assert refresh_interval == 0.5

    def test_proxy_without_namespace_uses_default(self, recorded_runs):
        result = CliRunner().invoke(cli.main, ["watch", "orders", "--host", "http://127.0.0.1:8001"])

        assert result.exit_code == 0, result.output
        assert recorded_runs[0][2].namespace == "default"

    def test_invalid_target(self, recorded_runs):
        result = CliRunner().invoke(cli.main, ["watch", ":8080", "--host", "http://127.0.0.1:8001"])

        assert result.exit_code == 2
        assert "TARGET" in result.output
        assert recorded_runs == []

    def test_refresh_interval_must_be_positive(self, recorded_runs):
        result = CliRunner().invoke(cli.main, ["watch", "orders", "--refresh-interval", "0"])
        assert result.exit_code == 2
        assert recorded_runs == []

    def test_missing_config_file(self, recorded_runs, tmp_path):
        result = CliRunner().invoke(
            cli.main, ["watch", "orders", "--config", str(tmp_path / "missing.yaml")]
        )
        assert result.exit_code == 2
        assert recorded_runs == []


class TestParseTarget:
    def test_uri(self):
        assert main.parse_target("kubernetes://team-a/orders") == ResolverTarget("team-a", "orders", None)

    def test_without_scheme(self):
        assert main.parse_target("orders:8080") == ResolverTarget(None, "orders", "8080")


class ReplayWatcher(EndpointSliceWatcher):
    """Watcher that replays fixed events, then stops the run loop."""

    def __init__(self, events, stop):
        super().__init__(InsecureTransport("http://kube-api.test", "default"))
        self.events = events
        self.stop = stop

    def watch(self, service_name, subscriber, cancel=None):
        for event in self.events:
            subscriber.on_event(event)
        subscriber.on_completed()
        self.stop.set()


class TestRun:
    def test_prints_addresses_and_errors(self, capsys):
        stop = threading.Event()
        events = [
            make_event("ADDED", make_slice(endpoints=[(["10.0.0.1", "10.0.1.1"], True), (["10.0.0.2"], True)]))
        ]

        main.run(
            types.SimpleNamespace(accumulate_slices=True),
            ResolverTarget.parse("orders"),
            ReplayWatcher(events, stop),
            refresh_interval=5.0,
            stop=stop,
        )

        captured = capsys.readouterr()
        assert captured.out == "[(10.0.0.1:8080, 10.0.1.1:8080), (10.0.0.2:8080)]\n"
        assert captured.err == "UNAVAILABLE: watch stream was closed by the server\n"
