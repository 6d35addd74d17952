import textwrap

from typer.testing import CliRunner

from rescueboot.cli import app as cli

runner = CliRunner()


def test_validate_lists_targets(tmp_path, monkeypatch):
    monkeypatch.delenv("RESCUEBOOT_SECRETS_FILE", raising=False)
    f = tmp_path / "cluster.yaml"
    f.write_text(textwrap.dedent("""
        cluster: true
        targets:
          - {ip: 10.0.0.1, hostname: node-1, cloud_config: x, manager: true}
          - {ip: 10.0.0.2, hostname: node-2, cloud_config: x, actions: [reset]}
    """))
    result = runner.invoke(cli.app, ["validate", "--config", str(f)])
    assert result.exit_code == 0, result.output
    assert "node-1" in result.output and "manager" in result.output
    assert "actions=reset" in result.output
    assert "2 target(s), cluster=on" in result.output


def test_validate_rejects_bad_config(tmp_path, monkeypatch):
    monkeypatch.delenv("RESCUEBOOT_SECRETS_FILE", raising=False)
    f = tmp_path / "cluster.yaml"
    f.write_text("targets:\n  - {ip: 10.0.0.1, hostname: node-1}\n")
    result = runner.invoke(cli.app, ["validate", "--config", str(f)])
    assert result.exit_code == 1


def test_probe_reports_reachability(monkeypatch):
    monkeypatch.setattr(cli, "is_reachable", lambda address, port, timeout: port == 22)
    ok = runner.invoke(cli.app, ["probe", "10.0.0.1"])
    assert ok.exit_code == 0
    assert "10.0.0.1:22 is reachable" in ok.output

    down = runner.invoke(cli.app, ["probe", "10.0.0.1", "--port", "2222"])
    assert down.exit_code == 1
    assert "is not reachable" in down.output


def test_validate_missing_cloud_config_file(tmp_path, monkeypatch):
    monkeypatch.delenv("RESCUEBOOT_SECRETS_FILE", raising=False)
    f = tmp_path / "cluster.yaml"
    f.write_text("targets:\n  - {ip: 10.0.0.1, hostname: node-1, cloud_config_file: missing.j2}\n")
    result = runner.invoke(cli.app, ["validate", "--config", str(f)])
    assert result.exit_code == 1
    assert not isinstance(result.exception, FileNotFoundError)
