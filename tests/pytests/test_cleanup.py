from __future__ import annotations

from pathlib import Path

import pytest

from scripts.deploy import cleanup, container, nginx_proxy
from scripts.deploy.errors import SshConnectionError
from scripts.deploy.repo_sync import BuildDescriptor


DOCKERFILE = BuildDescriptor(kind="dockerfile", path=Path("Dockerfile"))


def test_cleanup_removes_every_deployed_resource(fake_host, config):
    fake_host.app_files = {"Dockerfile"}
    container.rebuild_container(fake_host, config, DOCKERFILE, sleep=lambda _: None)
    nginx_proxy.configure_reverse_proxy(fake_host, app_port=config.app_port)

    cleanup.cleanup_remote_host(fake_host)

    assert fake_host.containers == {}
    assert fake_host.images == set()
    assert fake_host.app_files is None
    assert fake_host.files == {}
    assert fake_host.symlinks == {}


def test_cleanup_on_clean_host_succeeds(fake_host):
    cleanup.cleanup_remote_host(fake_host)
    cleanup.cleanup_remote_host(fake_host)
    assert fake_host.containers == {}


def test_cleanup_unreachable_host_runs_nothing(fake_host):
    fake_host.reachable = False
    with pytest.raises(SshConnectionError):
        cleanup.cleanup_remote_host(fake_host)
    assert fake_host.commands == ["echo SSH_OK"]


def test_cleanup_tolerates_failed_reload(fake_host, monkeypatch, caplog):
    original = fake_host._dispatch

    def dispatch(cmd, input_text):
        if cmd == nginx_proxy.NGINX_RELOAD_CMD:
            return 1, "", "nginx.service is not active"
        return original(cmd, input_text)

    monkeypatch.setattr(fake_host, "_dispatch", dispatch)
    with caplog.at_level("INFO"):
        cleanup.cleanup_remote_host(fake_host)
    assert "Nginx reload after cleanup failed" in caplog.text
    assert "All resources removed successfully" in caplog.text


def test_remove_local_clone(tmp_path: Path):
    (tmp_path / "app" / ".git").mkdir(parents=True)

    assert cleanup.remove_local_clone(workdir=tmp_path, repo_url="https://github.com/acme/app.git") is True
    assert not (tmp_path / "app").exists()


def test_remove_local_clone_leaves_non_git_directories(tmp_path: Path):
    (tmp_path / "app").mkdir()

    assert cleanup.remove_local_clone(workdir=tmp_path, repo_url="https://github.com/acme/app") is False
    assert (tmp_path / "app").exists()


def test_remove_local_clone_rejects_degenerate_names(tmp_path: Path):
    (tmp_path / ".git").mkdir()
    assert cleanup.remove_local_clone(workdir=tmp_path, repo_url="https://github.com/acme/.") is False
    assert cleanup.remove_local_clone(workdir=tmp_path, repo_url="") is False
    assert (tmp_path / ".git").exists()


def test_remove_local_clone_never_climbs_out_of_workdir(tmp_path: Path):
    (tmp_path / ".git").mkdir()
    workdir = tmp_path / "work"
    workdir.mkdir()

    assert cleanup.remove_local_clone(workdir=workdir, repo_url="https://github.com/acme/..") is False
    assert (tmp_path / ".git").exists()
    assert workdir.exists()
