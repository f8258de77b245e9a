from io import StringIO
from pathlib import Path

import pytest
import rich.console

import asgfetch.cli as cli
from asgfetch.errors import AsgNotFoundError, FetchErrorGroup

SPEC = """
asg_names: [web]
remote_path_to_file_filter:
  /var/log: ["*.log"]
auth:
  ssh_agent: true
"""


@pytest.fixture
def spec_file(tmp_path):
    path = tmp_path / "spec.yaml"
    path.write_text(SPEC)
    return path


@pytest.fixture
def output(monkeypatch):
    stream = StringIO()
    monkeypatch.setattr(
        cli, "ASGFETCH_CONSOLE", rich.console.Console(file=stream, width=500)
    )
    return stream


def test_cli_prints_fetched_paths(monkeypatch, spec_file, output):
    calls = []

    def fake_fetch(region, spec, verbose=False):
        calls.append((region, spec.asg_names, verbose))
        return [Path("fetched/3.0.0.1/log/app.log")]

    monkeypatch.setattr(cli, "fetch_files_from_asgs", fake_fetch)
    assert cli.fetch_from_spec_file(str(spec_file), region="us-west-2") is None
    assert calls == [("us-west-2", ["web"], True)]
    assert str(Path("fetched/3.0.0.1/log/app.log")) in output.getvalue()


def test_cli_exits_nonzero_on_failure(monkeypatch, spec_file, output):
    def failing_fetch(region, spec, verbose=False):
        raise FetchErrorGroup.collect(
            [AsgNotFoundError("no group named [web]")]
        )

    monkeypatch.setattr(cli, "fetch_files_from_asgs", failing_fetch)
    with pytest.raises(SystemExit) as info:
        cli.fetch_from_spec_file(str(spec_file), quiet=True)
    assert info.value.code == 1
    text = output.getvalue()
    assert "1 fetch operation failed" in text
    assert "AsgNotFoundError: no group named [web]" in text


def test_cli_rejects_incomplete_spec(monkeypatch, tmp_path, output):
    monkeypatch.setattr(cli, "fetch_files_from_asgs", None)
    path = tmp_path / "spec.yaml"
    path.write_text("asg_names: [web]\nauth:\n  ssh_agent: true\n")
    with pytest.raises(SystemExit) as info:
        cli.fetch_from_spec_file(str(path))
    assert info.value.code == 2
    assert "remote_path_to_file_filter" in output.getvalue()
