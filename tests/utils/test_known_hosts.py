import subprocess

import paramiko
import pytest

from rescueboot.errors import TerminalTransportError
from rescueboot.utils.known_hosts import KnownHosts
from rescueboot.utils.ssh import SshChannel


@pytest.fixture(scope="module")
def keys():
    return paramiko.RSAKey.generate(1024), paramiko.RSAKey.generate(1024)


@pytest.fixture
def keygen(monkeypatch):
    """Stands in for `ssh-keygen -f FILE -R NAME`: drops lines for NAME, keeps everything else."""
    calls = []

    def fake_run(cmd, **kw):
        calls.append(cmd)
        path, name = cmd[2], cmd[4]
        with open(path) as f:
            lines = f.readlines()
        kept = [l for l in lines if l.startswith("#") or name not in l.split(" ", 1)[0].split(",")]
        with open(path, "w") as f:
            f.writelines(kept)
        return subprocess.CompletedProcess(cmd, 0, "", "")
    monkeypatch.setattr(subprocess, "run", fake_run)
    return calls


def entry(name, key):
    return f"{name} {key.get_name()} {key.get_base64()}\n"


def test_forget_without_file_is_a_noop(tmp_path, monkeypatch):
    def boom(*a, **k):
        raise AssertionError("ssh-keygen must not run")
    monkeypatch.setattr(subprocess, "run", boom)

    KnownHosts(tmp_path / "known_hosts").forget("node-1", "10.0.0.1")


def test_forget_runs_ssh_keygen_per_name(tmp_path, keygen):
    path = tmp_path / "known_hosts"
    path.write_text("")

    KnownHosts(path).forget("node-1", "", "10.0.0.1")

    assert keygen == [
        ["ssh-keygen", "-f", str(path), "-R", "node-1"],
        ["ssh-keygen", "-f", str(path), "-R", "10.0.0.1"],
    ]


def test_missing_ssh_keygen_is_a_transport_error(tmp_path, monkeypatch):
    path = tmp_path / "known_hosts"
    path.write_text("")

    def missing(*a, **k):
        raise FileNotFoundError("ssh-keygen")
    monkeypatch.setattr(subprocess, "run", missing)

    with pytest.raises(TerminalTransportError):
        KnownHosts(path).forget("node-1")


def test_remember_creates_file(tmp_path, keys):
    path = tmp_path / "ssh" / "known_hosts"
    key, _ = keys

    KnownHosts(path).remember("10.0.0.1", key)

    assert path.read_text() == entry("10.0.0.1", key)


def test_remember_replaces_entry_and_keeps_the_rest(tmp_path, keys, keygen):
    old, new = keys
    path = tmp_path / "known_hosts"
    path.write_text("# my comment\n" + entry("other.example", old) + entry("10.0.0.1", old))

    KnownHosts(path).remember("10.0.0.1", new)

    assert path.read_text() == "# my comment\n" + entry("other.example", old) + entry("10.0.0.1", new)
    assert keygen == [["ssh-keygen", "-f", str(path), "-R", "10.0.0.1"]]


def test_remember_after_line_without_newline(tmp_path, keys, keygen):
    key, _ = keys
    path = tmp_path / "known_hosts"
    path.write_text(entry("other.example", key).rstrip("\n"))

    KnownHosts(path).remember("10.0.0.1", key)

    assert path.read_text().splitlines() == [entry("other.example", key).strip(), entry("10.0.0.1", key).strip()]


def test_load_into_skips_markers_comments_and_garbage(tmp_path, keys):
    key, _ = keys
    path = tmp_path / "known_hosts"
    path.write_text(
        "# managed by hand\n"
        "@cert-authority *.corp ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAABAQC\n"
        "@revoked bad.example ssh-rsa AAAA\n"
        "broken.example ssh-rsa not-base64!!\n"
        "\n"
        + entry("other.example", key)
    )
    client = paramiko.SSHClient()

    KnownHosts(path).load_into(client)

    found = client.get_host_keys().lookup("other.example")
    assert found["ssh-rsa"].asbytes() == key.asbytes()
    assert client.get_host_keys().lookup("broken.example") is None


def test_channel_client_tolerates_cert_authority_lines(tmp_path, keys):
    key, _ = keys
    path = tmp_path / "known_hosts"
    path.write_text("@cert-authority *.corp ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAABAQC\n" + entry("10.0.0.1", key))

    client = SshChannel(known_hosts=KnownHosts(path))._client()

    assert client.get_host_keys().lookup("10.0.0.1") is not None
