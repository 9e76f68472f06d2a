import socket

import pytest
import yaml

from ftpd.cli import load_config, main, setup_argparse


def test_sample_prints_yaml(capsys):
    assert main(["--sample"]) == 0
    assert yaml.safe_load(capsys.readouterr().out)["port"] == 21


def test_version(capsys):
    with pytest.raises(SystemExit) as exc:
        setup_argparse(["--version"])
    assert exc.value.code == 0
    assert "ftpd FTP server v2" in capsys.readouterr().out


def test_short_h_selects_host():
    args = setup_argparse(["-h", "0.0.0.0", "-p", "2121", "-c", "7", "-d"])
    assert args.host == "0.0.0.0"
    assert args.port == 2121
    assert args.clients == 7
    assert args.debug is True


def test_command_line_beats_config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "ftpd.yml").write_text("port: 2121\nclients: 2\n")
    config = load_config(setup_argparse(["-p", "3000"]))
    assert config.port == 3000
    assert config.clients == 2
    assert config.debug is False


def test_bad_config_exits_2(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert main(["--config", str(tmp_path / "missing.yml")]) == 2


def test_bind_failure_exits_1(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    busy = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    busy.bind(('127.0.0.1', 0))
    busy.listen(1)
    try:
        assert main(["-p", str(busy.getsockname()[1])]) == 1
    finally:
        busy.close()
