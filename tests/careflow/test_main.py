"""Tests for the command line entry point."""

import pytest

from careflow import __main__ as cli


class TestParseParams:
    def test_pairs(self):
        assert cli._parse_params(["page=2", "q=ana=b"]) == {"page": "2", "q": "ana=b"}

    def test_none(self):
        assert cli._parse_params(None) == {}

    @pytest.mark.parametrize("pair", ["page", "=2"])
    def test_invalid(self, pair):
        with pytest.raises(ValueError):
            cli._parse_params([pair])


class TestMain:
    def test_no_command_prints_help(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.argv", ["careflow"])

        assert cli.main() == 1
        assert "usage" in capsys.readouterr().out

    def test_missing_config_file(self, monkeypatch, capsys, tmp_path):
        monkeypatch.setattr(
            "sys.argv", ["careflow", "--config", str(tmp_path / "nope.yaml"), "me"]
        )

        assert cli.main() == 2
        assert "Configuration error" in capsys.readouterr().err

    def test_invalid_base_url(self, monkeypatch, capsys, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("CAREFLOW_BASE_URL", raising=False)
        monkeypatch.setattr("sys.argv", ["careflow", "--base-url", "not-a-url", "me"])

        assert cli.main() == 2
        assert "base_url" in capsys.readouterr().err
