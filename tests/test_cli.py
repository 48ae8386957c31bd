"""Tests for the command line entry point."""
import json

import pytest

from bs_calendar import load_config, main, parse_args


@pytest.fixture(autouse=True)
def empty_config_home(monkeypatch, tmp_path):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))


@pytest.fixture
def appointments_file(tmp_path):
    path = tmp_path / "appointments.json"
    path.write_text(json.dumps([
        {"title": "Standup", "start": "2024-03-14 09:30", "end": "2024-03-14 10:00"},
        {"title": "Review", "start": "2024-03-15 14:00", "end": "2024-03-15 15:00"},
    ]))
    return path


class TestLoadConfig:
    """Test cases for option overrides."""

    def test_defaults_without_file(self):
        config = load_config(parse_args([]))
        assert config.start_view == "month"
        assert config.now_refresh_interval == 0

    def test_overrides(self):
        config = load_config(parse_args(["--view", "year", "--date", "2024-03-14", "--debug"]))
        assert config.start_view == "year"
        assert str(config.start_date) == "2024-03-14"
        assert config.debug is True

    def test_config_file(self, tmp_path):
        path = tmp_path / "custom.toml"
        path.write_text('[General]\nstart_view = "day"\n')
        assert load_config(parse_args(["-c", str(path)])).start_view == "day"


class TestMain:
    """Test cases for main()."""

    def test_week_view(self, appointments_file, capsys):
        code = main(["--view", "week", "--date", "2024-03-14", "--appointments", str(appointments_file)])

        assert code == 0
        model = json.loads(capsys.readouterr().out)
        assert model["view"] == "week"
        assert model["window"] == {"start": "2024-03-10", "end": "2024-03-16"}
        assert len(model["days"]) == 7
        assert len(model["appointments"]) == 2

    def test_search(self, appointments_file, capsys):
        code = main(["--date", "2024-03-14", "--appointments", str(appointments_file), "--search", "any"])

        assert code == 0
        model = json.loads(capsys.readouterr().out)
        assert model["search_mode"] is True
        assert model["search"]["term"] == "any"
        assert model["search"]["total"] == 2

    def test_without_source(self, capsys):
        assert main(["--view", "day", "--date", "2024-03-14"]) == 0
        model = json.loads(capsys.readouterr().out)
        assert model["appointments"] == {}

    def test_missing_config_file(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["-c", str(tmp_path / "missing.toml")])
        assert excinfo.value.code == 1
        assert "Example configuration" in capsys.readouterr().out

    def test_invalid_date(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["--date", "not-a-date"])
        assert excinfo.value.code == 1
        assert "Error loading configuration" in capsys.readouterr().out

    def test_broken_appointments_file(self, tmp_path, capsys):
        path = tmp_path / "broken.json"
        path.write_text('{"title": "not a list"}')
        with pytest.raises(SystemExit):
            main(["--appointments", str(path)])
        assert "Error loading appointments" in capsys.readouterr().out
