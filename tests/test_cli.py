import json

import pytest

import run_optimizer
from conftest import random_walk_ticks
from core.logging_setup import teardown_logging


@pytest.fixture(autouse=True)
def _release_log_handlers():
    yield
    teardown_logging()


def _write_tick_file(path, ticks):
    lines = ["Date\tTime\tBid\tAsk"]
    for tick in ticks:
        stamp = tick.timestamp
        bid = tick.mid_price - 0.1
        ask = tick.mid_price + 0.1
        lines.append(f"{stamp:%Y.%m.%d}\t{stamp:%H:%M:%S}\t{bid:.2f}\t{ask:.2f}")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _write_config(tmp_path, **overrides):
    payload = {
        "data_dir": "ticks",
        "report_dir": "out",
        "timeframes": [5],
        "samples_per_chart": 4,
        "max_workers": 1,
        "seed": 11,
    }
    payload.update(overrides)
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps(payload), encoding="utf-8")
    return config_path


def _main(tmp_path, *argv):
    with pytest.raises(SystemExit) as excinfo:
        run_optimizer.main(["--logs-dir", str(tmp_path / "logs"), *argv])
    return excinfo.value.code


def test_optimize_writes_results(tmp_path):
    (tmp_path / "ticks").mkdir()
    _write_tick_file(tmp_path / "ticks" / "XAUUSDm.csv", random_walk_ticks(bars=80))
    config_path = _write_config(tmp_path)

    assert _main(tmp_path, "optimize", "--config", str(config_path)) == 0

    results = json.loads((tmp_path / "out" / "optimization_results.json").read_text(encoding="utf-8"))
    assert results["metadata"]["total_trials"] == 4
    assert results["metadata"]["seed"] == 11
    assert 1 <= len(results["top_results"]) <= 4
    assert (tmp_path / "logs" / "optimizer.log").exists()


def test_missing_config_is_config_error(tmp_path):
    assert _main(tmp_path, "optimize", "--config", str(tmp_path / "nope.json")) == 2


def test_invalid_config_is_config_error(tmp_path):
    config_path = _write_config(tmp_path, max_lot=-1)
    assert _main(tmp_path, "optimize", "--config", str(config_path)) == 2


def test_no_tick_data_exit_code(tmp_path):
    (tmp_path / "ticks").mkdir()
    config_path = _write_config(tmp_path)
    assert _main(tmp_path, "optimize", "--config", str(config_path)) == 4


def test_inspect_data_prints_manifest(tmp_path, capsys):
    _write_tick_file(tmp_path / "XAUUSDm.csv", random_walk_ticks(bars=3))
    assert _main(tmp_path, "--log-level", "ERROR", "inspect-data", "--data-dir", str(tmp_path)) == 0

    manifest = json.loads(capsys.readouterr().out)
    assert manifest["ticks_total"] == 18
    assert manifest["files"]["XAUUSDm.csv"]["instrument"] == "XAU_USD"
