"""
Tests for the command-line interface.

Each test works in its own temporary directory with a file-backed SQLite
database, so commands that open and close the store see each other's writes.
"""

import json

import pytest

from dns_failover import __version__
from dns_failover.cli import create_parser, main
from dns_failover.config import create_default_config, save_config_to_file


ENV_VARS = (
    "CF_API_TOKEN",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_SUPER_ADMIN_ID",
    "PROBE_BACKEND_URL",
    "PROBE_BACKEND_KEY",
    "DATABASE_URL",
)

RECORDS = (
    "app.example.com|443|false|0|edge.example.net|192.0.2.1|isp-a|false|10|0|A\n"
    "app.example.com|443|false|0|backup.example.net||isp-b|true|5|1|CNAME\n"
    "api.example.com|8443|true|1||||false|0|0|A\n"
)


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

    config = create_default_config()
    config.simulation_mode = True
    config.persistence.database_url = f"sqlite+aiosqlite:///{tmp_path / 'state.db'}"
    config.logging.level = "error"
    path = tmp_path / "config.json"
    assert save_config_to_file(config, path)
    return path


class TestParserProperty:
    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "dns-failover" in capsys.readouterr().out

    @pytest.mark.parametrize("argv", [
        ["run", "--dry-run", "-v"],
        ["check", "-l", "zh"],
        ["import", "records.txt"],
        ["export"],
        ["backend", "--port", "9000", "--public-ip", "203.0.113.1"],
        ["config", "init", "--force"],
        ["self-test"],
    ])
    def test_commands_parse(self, argv):
        args = create_parser().parse_args(argv)
        assert args.command == argv[0]
        assert callable(args.func)

    def test_unsupported_language_rejected(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["check", "--language", "de"])


class TestConfigCommandProperty:
    def test_init_show_validate(self, tmp_path, capsys, monkeypatch):
        for name in ENV_VARS:
            monkeypatch.delenv(name, raising=False)
        path = tmp_path / "nested" / "config.json"

        assert main(["config", "init", "--path", str(path), "--language", "zh"]) == 0
        assert json.loads(path.read_text(encoding="utf-8"))["language"] == "zh"

        assert main(["config", "init", "--path", str(path)]) == 1
        assert main(["config", "init", "--path", str(path), "--force"]) == 0

        assert main(["config", "show", "--path", str(path)]) == 0
        assert "Probe mode: local" in capsys.readouterr().out

        # A fresh default config has no Cloudflare token
        assert main(["config", "validate", "--path", str(path)]) == 1
        monkeypatch.setenv("CF_API_TOKEN", "token")
        assert main(["config", "validate", "--path", str(path)]) == 0

    def test_show_missing(self, tmp_path):
        assert main(["config", "show", "--path", str(tmp_path / "missing.json")]) == 1

    def test_explicit_missing_config_fails(self, tmp_path, capsys):
        assert main(["check", "--config", str(tmp_path / "missing.json")]) == 1
        assert "Could not load config" in capsys.readouterr().err


class TestRecordCommandsProperty:
    def test_import_then_export(self, config_file, tmp_path, capsys):
        records = tmp_path / "records.txt"
        records.write_text(RECORDS, encoding="utf-8")

        assert main(["import", str(records), "--config", str(config_file)]) == 0
        assert "Domains added: 2" in capsys.readouterr().out

        output = tmp_path / "export.txt"
        assert main(["export", str(output), "--config", str(config_file)]) == 0
        exported = [
            line for line in output.read_text(encoding="utf-8").splitlines()
            if not line.startswith("#")
        ]
        assert exported == RECORDS.splitlines()

        # Importing the same file again adds nothing
        assert main(["import", str(records), "--config", str(config_file)]) == 0
        assert "forwards added: 0" in capsys.readouterr().out

    def test_import_missing_file(self, config_file, tmp_path):
        assert main(["import", str(tmp_path / "none.txt"), "--config", str(config_file)]) == 1

    def test_import_malformed_file(self, config_file, tmp_path, capsys):
        records = tmp_path / "bad.txt"
        records.write_text("app.example.com|notaport|false|0|x|||false|0|0|A\n", encoding="utf-8")

        assert main(["import", str(records), "--config", str(config_file)]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_export_to_stdout(self, config_file, capsys):
        assert main(["export", "--config", str(config_file)]) == 0
        assert capsys.readouterr().out.startswith("#")


class TestCheckCommandProperty:
    def test_check_with_no_domains(self, config_file, capsys):
        assert main(["check", "--config", str(config_file)]) == 0
        assert "0" in capsys.readouterr().out

    def test_backend_requires_key(self, config_file, capsys):
        assert main(["backend", "--config", str(config_file)]) == 1
        assert "PROBE_BACKEND_KEY" in capsys.readouterr().err
