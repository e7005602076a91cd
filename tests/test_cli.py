import json
import threading

import pytest
import yaml

from helios_activity.cli import build_parser, main, wait_for_scheduler


def test_config_show_prints_defaults(tmp_path, capsys) -> None:
    main(["--config", str(tmp_path / "activity.yaml"), "config", "show"])

    shown = json.loads(capsys.readouterr().out)
    assert shown == {
        "bridge_repetitions": 1,
        "min_hls_bridge": 0.001,
        "max_hls_bridge": 0.004,
        "stake_repetitions": 1,
        "min_hls_stake": 0.01,
        "max_hls_stake": 0.03,
    }


def test_config_set_persists_changes(tmp_path, capsys) -> None:
    config_path = tmp_path / "activity.yaml"

    main(
        [
            "--config",
            str(config_path),
            "config",
            "set",
            "--bridge-repetitions",
            "3",
            "--stake-range",
            "0.02",
            "0.05",
        ]
    )

    shown = json.loads(capsys.readouterr().out)
    assert shown["bridge_repetitions"] == 3
    assert (shown["min_hls_stake"], shown["max_hls_stake"]) == (0.02, 0.05)
    assert yaml.safe_load(config_path.read_text())["activity"] == shown


def test_config_set_rejects_inverted_range(tmp_path, capsys) -> None:
    config_path = tmp_path / "activity.yaml"

    with pytest.raises(SystemExit) as excinfo:
        main(["--config", str(config_path), "config", "set", "--bridge-range", "0.5", "0.1"])

    assert excinfo.value.code == 1
    assert "cannot be greater than" in capsys.readouterr().err
    assert not config_path.exists()


def test_config_set_requires_a_value(tmp_path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["--config", str(tmp_path / "activity.yaml"), "config", "set"])

    assert excinfo.value.code == 1


def test_run_without_keys_exits_with_error(tmp_path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(
            [
                "--keys",
                str(tmp_path / "pk.txt"),
                "--proxies",
                str(tmp_path / "proxy.txt"),
                "--config",
                str(tmp_path / "activity.yaml"),
                "run",
                "--once",
            ]
        )

    assert excinfo.value.code == 1


def test_parser_defaults() -> None:
    args = build_parser().parse_args(["run"])

    assert args.keys == "pk.txt"
    assert args.proxies == "proxy.txt"
    assert args.config == "activity.yaml"
    assert args.once is False


class StubScheduler:
    def __init__(self) -> None:
        self.polls = 0
        self.stops = 0

    def wait_until_idle(self, timeout=None) -> bool:
        self.polls += 1
        return self.stops > 0

    def request_stop(self) -> bool:
        self.stops += 1
        return True


def test_flagged_stop_is_forwarded_from_wait_loop() -> None:
    scheduler = StubScheduler()
    stop_requested = threading.Event()
    stop_requested.set()

    wait_for_scheduler(scheduler, stop_requested, poll_seconds=0)

    assert scheduler.stops == 1
    assert scheduler.polls == 2
    assert not stop_requested.is_set()
