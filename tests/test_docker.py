"""Tests for the read-only docker usage summary."""

import pytest

from tidymac.docker import DockerInspector, parse_docker_size, parse_system_df

DF_OUTPUT = "Images\t2.5GB\t1.2GB (48%)\nContainers\t150MB\t0B (0%)\nLocal Volumes\t1.2kB\t1.2kB (100%)\nBuild Cache\t0B\t0B\n"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("2.5GB", 2_500_000_000),
        ("150MB", 150_000_000),
        ("1.2kB", 1200),
        ("0B", 0),
        ("", 0),
        ("garbage", 0),
    ],
)
def test_parse_docker_size(text, expected):
    assert parse_docker_size(text) == expected


def test_parse_system_df():
    rows = parse_system_df(DF_OUTPUT)
    assert [r["type"] for r in rows] == ["Images", "Containers", "Local Volumes", "Build Cache"]
    assert rows[0]["reclaimable_bytes"] == 1_200_000_000
    assert rows[1]["size_bytes"] == 150_000_000


class FakeRunner:
    def __init__(self, responses):
        self.responses = list(responses)
        self.commands = []

    def __call__(self, command, timeout):
        self.commands.append(command)
        return self.responses.pop(0)


def test_usage_when_daemon_is_down():
    runner = FakeRunner([(1, "", "Cannot connect to the Docker daemon")])
    usage = DockerInspector(runner=runner).usage()
    assert usage["installed"] is True
    assert usage["running"] is False
    assert "Cannot connect" in usage["error"]
    assert len(runner.commands) == 1


def test_usage_totals():
    runner = FakeRunner([(0, "24.0.7\n", ""), (0, DF_OUTPUT, "")])
    usage = DockerInspector(runner=runner).usage()
    assert usage["running"] is True
    assert usage["total_bytes"] == 2_500_000_000 + 150_000_000 + 1200
    assert usage["reclaimable_bytes"] == 1_200_000_000 + 1200
    assert all("prune" not in c for cmd in runner.commands for c in cmd)
