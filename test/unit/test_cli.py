#!/usr/bin/env python3
"""Tests for the interceptor and executor command-line entry points."""
import subprocess
from pathlib import Path

import pytest

import executor
import interceptor
from quicklink import EXIT_CACHE_MISS, EXIT_CONFIG, Fingerprint, LinkCache
from trace_samples import LINKER, SCRATCH_MAIN_ARCHIVE, go_env_json, make_trace


class FakeToolchain:
    """Stands in for subprocess.run: answers `go env -json`, `go build -x` and the linker."""

    def __init__(self, build_traces=None, build_returncode=0):
        self.build_traces = build_traces or [make_trace()]
        self.build_returncode = build_returncode
        self.calls = []
        self.builds = 0

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        if cmd[1:] == ["env", "-json"]:
            return subprocess.CompletedProcess(cmd, 0, stdout=go_env_json(), stderr="")
        if cmd[0] == LINKER:
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")
        self.builds += 1
        trace = self.build_traces[min(self.builds, len(self.build_traces)) - 1]
        return subprocess.CompletedProcess(cmd, self.build_returncode, stdout=trace)


@pytest.fixture(autouse=True)
def workdir(tmp_path, monkeypatch):
    """Run in a temporary directory, since the interceptor deletes the -o file before building."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def toolchain(monkeypatch):
    fake = FakeToolchain()
    monkeypatch.setattr(subprocess, "run", fake)
    return fake


@pytest.fixture
def execs(monkeypatch, tmp_path):
    """Record exec calls instead of replacing the test process."""
    calls = []
    monkeypatch.setattr("os.execve", lambda path, argv, env: calls.append((path, argv)))
    monkeypatch.setattr("tempfile.tempdir", str(tmp_path))
    return calls


def test_intercept_then_execute(toolchain, execs, tmp_path):
    db = str(tmp_path / "link.db")
    output = str(tmp_path / "foo")

    assert interceptor.main(["--db", db, "--", "go", "build", "-tags", "A", "-o", output, "."]) == 0
    assert toolchain.calls[0] == ["go", "env", "-json"]
    assert toolchain.calls[1] == ["go", "build", "-x", "-tags", "A", "-o", output, "."]

    executor.main(["--db", db, "--link", LINKER, "--tags", "A", "--", output, "--verbose"])

    [(binary, argv)] = execs
    assert argv == [output, "--verbose"]
    assert Path(binary).name.startswith("foo-")
    assert toolchain.calls[-1][0] == LINKER


def test_intercept_without_double_dash(toolchain, tmp_path):
    db = tmp_path / "link.db"
    assert interceptor.main(["--db", str(db), "go", "build", "-o", "foo"]) == 0
    assert LinkCache(db).lookup(Fingerprint("foo")) is not None


def test_executor_queries_linker_path(toolchain, execs, tmp_path):
    db = str(tmp_path / "link.db")
    interceptor.main(["--db", db, "go", "build", "-o", "foo"])

    executor.main(["--db", db, "foo"])

    assert toolchain.calls[-2] == ["go", "env", "-json"]
    assert toolchain.calls[-1][0] == LINKER
    assert len(execs) == 1


def test_intercept_requires_output(toolchain, tmp_path, capsys):
    assert interceptor.main(["--db", str(tmp_path / "link.db"), "go", "build", "."]) == EXIT_CONFIG
    assert toolchain.calls == []
    assert "-o flag is required" in capsys.readouterr().err


def test_intercept_requires_command(toolchain, tmp_path):
    assert interceptor.main(["--db", str(tmp_path / "link.db")]) == EXIT_CONFIG
    assert toolchain.calls == []


def test_intercept_build_failure_exit_code(monkeypatch, tmp_path, capsys):
    fake = FakeToolchain(["main.go:3:1: expected declaration\n"], build_returncode=1)
    monkeypatch.setattr(subprocess, "run", fake)

    assert interceptor.main(["--db", str(tmp_path / "link.db"), "go", "build", "-o", "foo"]) == 1
    err = capsys.readouterr().err
    assert "expected declaration" in err
    assert not (tmp_path / "link.db").exists()


def test_intercept_unstable_cache(monkeypatch, tmp_path, capsys):
    fake = FakeToolchain([make_trace(main=SCRATCH_MAIN_ARCHIVE)])
    monkeypatch.setattr(subprocess, "run", fake)

    assert interceptor.main(["--db", str(tmp_path / "link.db"), "go", "build", "-o", "foo"]) == 1
    assert fake.builds == 3
    assert "Error:" in capsys.readouterr().err


def test_execute_requires_program(toolchain, tmp_path, capsys):
    assert executor.main(["--db", str(tmp_path / "link.db"), "--link", LINKER]) == EXIT_CONFIG
    assert "need an executable name" in capsys.readouterr().err


def test_execute_cache_miss(toolchain, execs, tmp_path, capsys):
    assert executor.main(["--db", str(tmp_path / "link.db"), "--link", LINKER, "foo"]) == EXIT_CACHE_MISS
    assert "No link command found for 'foo'" in capsys.readouterr().err
    assert toolchain.calls == []
    assert execs == []


def test_execute_wrong_tags_is_a_miss(toolchain, execs, tmp_path):
    db = str(tmp_path / "link.db")
    interceptor.main(["--db", db, "go", "build", "-tags", "A", "-o", "foo"])
    assert executor.main(["--db", db, "--link", LINKER, "--tags", "B", "foo"]) == EXIT_CACHE_MISS


def test_log_file(toolchain, tmp_path):
    log_file = tmp_path / "logs" / "intercept.log"
    interceptor.main(["--db", str(tmp_path / "link.db"), "--log-level", "2", "--log-file", str(log_file),
                      "go", "build", "-o", "foo"])
    assert "Link command found" in log_file.read_text()


@pytest.mark.parametrize("main", [interceptor.main, executor.main])
def test_log_level_help(main, capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["--help"])
    assert exc_info.value.code == 0
    assert "0 = warnings only" in " ".join(capsys.readouterr().out.split())
