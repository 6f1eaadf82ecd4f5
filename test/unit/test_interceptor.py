#!/usr/bin/env python3
"""Unit tests for capturing link commands from go builds."""
import subprocess

import pytest

from quicklink import (BuildCommand, CacheUnstableError, ConfigurationError, Fingerprint, Interceptor,
                       NothingToCacheError, Placeholder, ToolchainError)
from trace_samples import MAIN_ARCHIVE, NO_LINK_TRACE, SCRATCH_MAIN_ARCHIVE, make_trace


class FakeGoBuild:
    """Stands in for subprocess.run, printing one trace per call."""

    def __init__(self, *traces, returncode=0):
        self.traces = list(traces)
        self.returncode = returncode
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        trace = self.traces[min(len(self.calls), len(self.traces)) - 1]
        return subprocess.CompletedProcess(cmd, self.returncode, stdout=trace)


@pytest.fixture
def interceptor(cache, go_env, logger):
    return Interceptor(cache, go_env, logger)


@pytest.fixture
def output(tmp_path):
    return str(tmp_path / "foo")


# ---- BuildCommand ----

def test_build_command_fingerprint():
    command = BuildCommand(["go", "build", "-tags", "B,A", "-o", "foo", "."])
    assert command.fingerprint == Fingerprint("foo", ["A", "B"])
    assert command.go_tool == "go"


@pytest.mark.parametrize("args,output,tags", [
    (["go", "build", "-o", "foo"], "foo", []),
    (["go", "build", "-o=foo", "./cmd/foo"], "foo", []),
    (["go", "build", "--o", "foo"], "foo", []),
    (["go", "build", "-tags=netgo,osusergo", "-o", "bin/foo"], "bin/foo", ["netgo", "osusergo"]),
    (["go", "build", "--tags", "A", "-o", "foo"], "foo", ["A"]),
    (["go", "build", "-o", "foo", "-tags", ""], "foo", []),
])
def test_build_command_flags(args, output, tags):
    command = BuildCommand(args)
    assert command.output == output
    assert command.tags == tags


def test_traced_args_insert_trace_flag():
    command = BuildCommand(["/usr/local/go/bin/go", "build", "-o", "foo", "."])
    assert command.traced_args() == ["/usr/local/go/bin/go", "build", "-x", "-o", "foo", "."]


def test_output_is_required():
    with pytest.raises(ConfigurationError, match="-o flag is required"):
        BuildCommand(["go", "build", "."])


@pytest.mark.parametrize("args", [
    [],
    ["go"],
    ["go", "run", "-o", "foo"],
    ["go", "-o", "foo", "build"],
])
def test_not_a_build_command(args):
    with pytest.raises(ConfigurationError):
        BuildCommand(args)


def test_flag_without_value():
    with pytest.raises(ConfigurationError, match="needs a value"):
        BuildCommand(["go", "build", "-o"])


@pytest.mark.pedantic
def test_flags_after_double_dash_are_ignored():
    command = BuildCommand(["go", "build", "-o", "foo", "--", "-tags", "A"])
    assert command.tags == []


# ---- Interceptor ----

def test_run_stores_link_command(interceptor, cache, output, monkeypatch):
    build = FakeGoBuild(make_trace())
    monkeypatch.setattr("quicklink._interceptor.subprocess.run", build)

    ids = interceptor.run(BuildCommand(["go", "build", "-tags", "A", "-o", output, "."]))

    assert len(ids) == 1
    assert build.calls == [["go", "build", "-x", "-tags", "A", "-o", output, "."]]
    cached = cache.lookup(Fingerprint(output, ["A"]))
    assert cached.main_package == MAIN_ARCHIVE
    assert cached.arguments[1].placeholder == Placeholder.OUTPUT_PATH


def test_previous_output_is_removed(interceptor, output, monkeypatch, tmp_path):
    (tmp_path / "foo").write_text("old binary")
    seen = []

    def build(cmd, **kwargs):
        seen.append((tmp_path / "foo").exists())
        return subprocess.CompletedProcess(cmd, 0, stdout=make_trace())

    monkeypatch.setattr("quicklink._interceptor.subprocess.run", build)
    interceptor.run(BuildCommand(["go", "build", "-o", output]))
    assert seen == [False]


def test_second_attempt_accepted_after_cold_build(interceptor, cache, output, monkeypatch):
    build = FakeGoBuild(make_trace(main=SCRATCH_MAIN_ARCHIVE), make_trace())
    monkeypatch.setattr("quicklink._interceptor.subprocess.run", build)

    trace = interceptor.capture(BuildCommand(["go", "build", "-o", output]))

    assert len(build.calls) == 2
    assert MAIN_ARCHIVE in list(trace.packagefile_paths())


def test_unstable_cache_gives_up(interceptor, cache, output, monkeypatch):
    build = FakeGoBuild(make_trace(main=SCRATCH_MAIN_ARCHIVE))
    monkeypatch.setattr("quicklink._interceptor.subprocess.run", build)

    with pytest.raises(CacheUnstableError):
        interceptor.run(BuildCommand(["go", "build", "-o", output]))

    assert len(build.calls) == 3
    assert cache.lookup(Fingerprint(output)) is None


def test_max_attempts_is_configurable(cache, go_env, logger, output, monkeypatch):
    build = FakeGoBuild(make_trace(main=SCRATCH_MAIN_ARCHIVE))
    monkeypatch.setattr("quicklink._interceptor.subprocess.run", build)

    with pytest.raises(CacheUnstableError):
        Interceptor(cache, go_env, logger, max_attempts=1).run(BuildCommand(["go", "build", "-o", output]))
    assert len(build.calls) == 1


def test_nothing_to_cache(interceptor, cache, output, monkeypatch):
    monkeypatch.setattr("quicklink._interceptor.subprocess.run", FakeGoBuild(NO_LINK_TRACE))

    with pytest.raises(NothingToCacheError):
        interceptor.run(BuildCommand(["go", "build", "-o", output]))
    assert not cache.db_path.exists()


def test_build_failure_propagates_exit_code(interceptor, cache, output, monkeypatch):
    failing = FakeGoBuild("./main.go:3:1: syntax error\n", returncode=1)
    monkeypatch.setattr("quicklink._interceptor.subprocess.run", failing)

    with pytest.raises(ToolchainError) as exc_info:
        interceptor.run(BuildCommand(["go", "build", "-o", output]))
    assert exc_info.value.exit_status == 1
    assert "syntax error" in exc_info.value.output
    assert len(failing.calls) == 1


def test_go_not_found(interceptor, output, monkeypatch):
    def build(cmd, **kwargs):
        raise FileNotFoundError(2, "No such file or directory", cmd[0])

    monkeypatch.setattr("quicklink._interceptor.subprocess.run", build)
    with pytest.raises(ToolchainError):
        interceptor.run(BuildCommand(["nogo", "build", "-o", output]))


@pytest.mark.pedantic
def test_cache_path_check_uses_normalized_paths(interceptor, output, monkeypatch):
    # A $WORK path that merely contains the GOCACHE string is not cached
    sneaky = "/tmp/go-build9/home/gopher/.cache/go-build/x.a"
    build = FakeGoBuild(make_trace(main=sneaky))
    monkeypatch.setattr("quicklink._interceptor.subprocess.run", build)

    with pytest.raises(CacheUnstableError):
        interceptor.capture(BuildCommand(["go", "build", "-o", output]))
