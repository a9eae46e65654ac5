"""
Tests for the farmwatch command line.

Commands run end to end against the in-memory store and the shipped config/.
"""

import json

import pytest

from farmwatch.cli import build_parser, main, parse_mapping
from farmwatch.exceptions import ConfigurationError
from tests.conftest import FARM_ID, REPO_CONFIG, cold_dip_series


@pytest.fixture(autouse=True)
def memory_store(monkeypatch):
    monkeypatch.setenv("FARMWATCH_STORE", "memory")
    monkeypatch.delenv("LOG_LEVEL", raising=False)


def _csv(tmp_path, count=100):
    lines = ["timestamp,temp,rh,soil_moisture,tank"]
    for r in cold_dip_series(count=count, dip_start=min(50, count // 2)):
        lines.append(
            f"{r.timestamp.isoformat()},{r.temp_f},{r.rh_pct},{r.soil_moisture_pct},{r.tank_pct}"
        )
    path = tmp_path / "farm.csv"
    path.write_text("\n".join(lines) + "\n")
    return path


def _run(capsys, *argv):
    code = main(["--config", str(REPO_CONFIG), *argv])
    return code, capsys.readouterr().out


class TestParseMapping:
    def test_pairs(self):
        assert parse_mapping(["temp=air_temp", "rh = humidity"]) == {
            "temp": "air_temp",
            "rh": "humidity",
        }

    def test_empty(self):
        assert parse_mapping(None) is None
        assert parse_mapping([]) is None

    def test_invalid(self):
        with pytest.raises(ConfigurationError):
            parse_mapping(["temp"])


class TestParser:
    def test_run_experiments_flags(self):
        args = build_parser().parse_args(
            [
                "run-experiments",
                "--farm-id",
                FARM_ID,
                "--experiment",
                "exp_static_v1",
                "--experiment",
                "exp_dynamic_quantile_v2",
            ]
        )
        assert args.experiment == ["exp_static_v1", "exp_dynamic_quantile_v2"]
        assert args.csv is None
        assert args.temp_unit == "f"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    def test_init_db(self, capsys):
        code, out = _run(capsys, "init-db")
        assert code == 0
        assert FARM_ID in json.loads(out)["farms"]

    def test_backtest_csv(self, capsys, tmp_path):
        code, out = _run(capsys, "run-experiments", "--farm-id", FARM_ID, "--csv", str(_csv(tmp_path)))

        assert code == 0
        summary = json.loads(out)
        assert [e["experiment_id"] for e in summary["experiments"]] == [
            "exp_static_v1",
            "exp_dynamic_quantile_v2",
            "exp_dynamic_quantile_stable_v2",
        ]
        assert all(e["window_label"] == "event_window" for e in summary["experiments"])
        assert summary["experiments"][0]["alerts"] >= 1

    def test_unknown_farm_exit_code(self, capsys, tmp_path):
        code, _ = _run(capsys, "import-csv", "--farm-id", "farm_missing", "--file", str(_csv(tmp_path)))
        assert code == 2

    def test_insufficient_data_exit_code(self, capsys, tmp_path):
        code, _ = _run(
            capsys, "run-experiments", "--farm-id", FARM_ID, "--csv", str(_csv(tmp_path, count=20))
        )
        assert code == 3

    def test_evaluate_without_readings(self, capsys):
        code, _ = _run(capsys, "evaluate", "--farm-id", FARM_ID)
        assert code == 3

    def test_evaluate_unknown_farm_exit_code(self, capsys):
        code, _ = _run(capsys, "evaluate", "--farm-id", "farm_missing")
        assert code == 2

    def test_delete_ground_truth_unknown_farm_exit_code(self, capsys):
        code, _ = _run(capsys, "delete-ground-truth", "--farm-id", "farm_missing")
        assert code == 2
