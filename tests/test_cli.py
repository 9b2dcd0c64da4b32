import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from geo_multisearch import __main__ as cli
from geo_multisearch.errors import ProviderError

from conftest import FakeProvider, zip_row


SRC = Path(__file__).resolve().parents[1] / "src"


def _run(argv, capsys):
    code = cli.main(argv)
    out = capsys.readouterr().out
    return code, out


def _view(out):
    decoder = json.JSONDecoder()
    view, _ = decoder.raw_decode(out)
    return view


def test_module_entrypoint_prints_merged_view():
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(p for p in (str(SRC), env.get("PYTHONPATH")) if p)
    proc = subprocess.run(
        [sys.executable, "-m", "geo_multisearch", "--radius", "30.0,-97.0,3", "--hierarchy", "TX/Travis"],
        capture_output=True,
        text=True,
        check=False,
        env=env,
    )
    assert proc.returncode == 0, proc.stderr
    view = json.loads(proc.stdout)
    assert [e["kind"] for e in view["entries"]] == ["radius", "hierarchy"]
    assert view["results"]["leaves"]


def test_exclude_by_position(capsys):
    code, out = _run(
        ["--radius", "30.0,-97.0,3", "--radius", "31.0,-97.0,3", "--exclude", "2"], capsys
    )

    view = _view(out)
    assert code == 0
    second = [e for e in view["entries"] if e["geometry"]["lat"] == 31.0][0]
    assert view["excluded"] == [second["id"]]
    assert all(second["id"] not in leaf["search_ids"] for leaf in view["results"]["leaves"])


def test_no_combine_shows_only_latest(capsys):
    code, out = _run(
        ["--radius", "30.0,-97.0,3", "--polygon", "31 -97;31 -96.9;31.1 -96.9", "--no-combine"],
        capsys,
    )

    view = _view(out)
    assert code == 0
    assert view["combine"] is False
    polygon = [e for e in view["entries"] if e["kind"] == "polygon"][0]
    assert view["active_id"] == polygon["id"]
    assert {sid for leaf in view["results"]["leaves"] for sid in leaf["search_ids"]} == {polygon["id"]}


def test_export_then_restore(tmp_path, capsys):
    path = tmp_path / "state.json"
    code, out = _run(["--radius", "30.0,-97.0,3", "--export", str(path)], capsys)
    assert code == 0
    exported = json.loads(path.read_text(encoding="utf-8"))
    assert exported["families"]["radius"][0]["cached_leaves"]

    code, restored_out = _run(["--restore", str(path)], capsys)

    assert code == 0
    assert _view(restored_out)["results"] == _view(out)["results"]


def test_restore_missing_file_reports_error(tmp_path, capsys):
    code, out = _run(["--restore", str(tmp_path / "missing.json")], capsys)
    assert code == 1
    assert "restore failed" in json.loads(out)["error"]


def test_provider_failure_exits_nonzero(monkeypatch, capsys):
    provider = FakeProvider()
    monkeypatch.setattr(cli, "get_provider", lambda name=None: provider)

    def search(kind, geometry):
        if str(kind) == "hierarchy":
            raise ProviderError("upstream down")
        return [zip_row("1")]

    provider.search = search
    code, out = _run(["--radius", "30.0,-97.0,3", "--hierarchy", "TX"], capsys)

    assert code == 1
    assert [leaf["key"] for leaf in _view(out)["results"]["leaves"]] == ["1"]
    assert json.loads(out.strip().splitlines()[-1]) == {"error": "upstream down"}


@pytest.mark.parametrize(
    "argv",
    [
        ["--radius", "30.0,-97.0"],
        ["--polygon", "1 1;2 2"],
        ["--hierarchy", "TX//Austin"],
        ["--radius", "30.0,-97.0,3", "--exclude", "2"],
    ],
)
def test_bad_arguments_exit_with_usage_error(argv, capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main(argv)
    assert exc.value.code == 2
