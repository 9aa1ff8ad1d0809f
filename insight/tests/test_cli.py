from __future__ import annotations

import json
import sqlite3
import sys

import pytest

from insight import main as cli


def _settings_file(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(f"paths:\n  db_path: {tmp_path / 'cli.db'}\n", encoding="utf-8")
    return str(path)


def test_init_db_writes_json_output(tmp_path, monkeypatch, capsys):
    output = tmp_path / "out" / "result.json"
    monkeypatch.setattr(
        sys, "argv", ["aegis-insight", "--settings", _settings_file(tmp_path), "--json-output", str(output), "init-db"]
    )

    assert cli.main() == 0

    payload = json.loads(output.read_text(encoding="utf-8"))
    assert payload["result"]["db_path"] == str(tmp_path / "cli.db")
    assert "generated_at" in payload
    assert json.loads(capsys.readouterr().out)["result"] == payload["result"]
    conn = sqlite3.connect(str(tmp_path / "cli.db"))
    assert conn.execute("SELECT name FROM sqlite_master WHERE name='reports'").fetchone()
    conn.close()


def test_scan_blank_subject_exits_with_invalid_arguments(tmp_path, monkeypatch):
    monkeypatch.setattr(sys, "argv", ["aegis-insight", "--settings", _settings_file(tmp_path), "scan", "--subject", "  "])
    assert cli.main() == 2


def test_missing_subcommand_exits_with_usage_error(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["aegis-insight"])
    with pytest.raises(SystemExit) as exc_info:
        cli.main()
    assert exc_info.value.code == 2


def test_scan_arguments_parse():
    args = cli.build_arg_parser().parse_args(
        ["scan", "--subject", "Acme", "--kind", "vendor", "--org-id", "org-1", "--tool-id", "tool-1"]
    )
    assert args.command == "scan"
    assert args.kind == "vendor"
    assert args.org_id == "org-1"
    assert args.report_id is None
