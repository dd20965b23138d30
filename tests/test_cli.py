"""Tests for the command line interface."""

import pytest
from click.testing import CliRunner

from lanpair.cli import cli, format_size
from lanpair.protocol.certificate import LocalCertificate


@pytest.fixture
def runner(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv('LANPAIR_DEVICE_ID', 'cli-device')
    return CliRunner()


def test_init_creates_certificate(runner, tmp_path):
    data_dir = tmp_path / "data"
    result = runner.invoke(cli, ['--data-dir', str(data_dir), 'init'])

    assert result.exit_code == 0, result.output
    assert "cli-device" in result.output

    certificate = LocalCertificate.load_or_create(data_dir, 'other')
    assert certificate.device_id == 'cli-device'


def test_init_is_stable(runner, tmp_path):
    data_dir = tmp_path / "data"
    runner.invoke(cli, ['--data-dir', str(data_dir), 'init'])
    first = (data_dir / "certificate.pem").read_bytes()
    runner.invoke(cli, ['--data-dir', str(data_dir), 'init'])

    assert (data_dir / "certificate.pem").read_bytes() == first


def test_init_saves_config(runner, tmp_path):
    from lanpair.config import Config

    path = tmp_path / "config.json"
    result = runner.invoke(cli, ['--data-dir', str(tmp_path / "data"),
                                 'init', '--save-config', str(path)])

    assert result.exit_code == 0, result.output
    saved = Config.from_file(path)
    assert saved.device_id == 'cli-device'
    assert saved.data_dir == tmp_path / "data"


def test_devices_empty(runner, tmp_path):
    result = runner.invoke(cli, ['--data-dir', str(tmp_path / "data"), 'devices'])

    assert result.exit_code == 0, result.output
    assert "No known devices" in result.output


def test_forget_unknown_device(runner, tmp_path):
    result = runner.invoke(cli, ['--data-dir', str(tmp_path / "data"), 'forget', 'ghost'])

    assert result.exit_code == 0, result.output
    assert "Unknown device" in result.output


def test_send_requires_existing_file(runner, tmp_path):
    result = runner.invoke(cli, ['--data-dir', str(tmp_path / "data"),
                                 'send', str(tmp_path / "missing.bin")])
    assert result.exit_code != 0


def test_receive_refused(runner, tmp_path):
    from conftest import free_port

    result = runner.invoke(cli, [
        '--data-dir', str(tmp_path / "data"),
        'receive', '127.0.0.1', str(free_port()), str(tmp_path / "out.bin"), '--size', '10',
    ])

    assert result.exit_code == 0, result.output
    assert "✗" in result.output


@pytest.mark.parametrize("count, expected", [
    (0, "0.0 B"),
    (1536, "1.5 KB"),
    (5 * 1024 * 1024, "5.0 MB"),
])
def test_format_size(count, expected):
    assert format_size(count) == expected
