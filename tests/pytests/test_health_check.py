from __future__ import annotations

import requests

from scripts.deploy import health_check


class FakeResponse:
    def __init__(self, status_code: int) -> None:
        self.status_code = status_code


def test_probe_public_endpoint_returns_status(monkeypatch):
    seen: dict[str, object] = {}

    def fake_get(url: str, timeout: int):
        seen["url"] = url
        seen["timeout"] = timeout
        return FakeResponse(200)

    monkeypatch.setattr(health_check.requests, "get", fake_get)

    assert health_check.probe_public_endpoint("203.0.113.10") == 200
    assert seen == {"url": "http://203.0.113.10/", "timeout": health_check.PUBLIC_PROBE_TIMEOUT_SECONDS}


def test_probe_public_endpoint_swallows_network_errors_as_none(monkeypatch, caplog):
    def fake_get(url: str, timeout: int):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(health_check.requests, "get", fake_get)
    with caplog.at_level("WARNING"):
        assert health_check.probe_public_endpoint("203.0.113.10") is None
    assert "Public probe of http://203.0.113.10/ failed" in caplog.text


def test_validate_deployment_reports_healthy_app(fake_host, monkeypatch):
    fake_host.containers["app-container"] = {"image": "devops-app:latest", "ports": "8080:3000"}
    monkeypatch.setattr(health_check, "probe_public_endpoint", lambda server_ip: 200)
    sleeps: list[float] = []

    report = health_check.validate_deployment(fake_host, server_ip="203.0.113.10", sleep=sleeps.append)

    assert report.responding is True
    assert report.health_body == '{"status":"ok"}'
    assert report.public_status == 200
    assert sleeps == [health_check.SETTLE_DELAY_SECONDS]


def test_validate_deployment_failures_are_advisory(fake_host, monkeypatch, caplog):
    monkeypatch.setattr(health_check, "probe_public_endpoint", lambda server_ip: None)

    with caplog.at_level("INFO"):
        report = health_check.validate_deployment(fake_host, server_ip="203.0.113.10", sleep=lambda _: None)

    assert report.responding is False
    assert report.status_code == "502"
    assert report.health_body == ""
    assert "expected 200" in caplog.text
    assert "empty body" in caplog.text


def test_validate_deployment_compose_failure_names_app_port(fake_host, monkeypatch, caplog):
    monkeypatch.setattr(health_check, "probe_public_endpoint", lambda server_ip: None)

    with caplog.at_level("WARNING"):
        health_check.validate_deployment(
            fake_host, server_ip="203.0.113.10", app_port=8080, compose=True, sleep=lambda _: None
        )

    assert "publish the app on host port 8080" in caplog.text


def test_validate_deployment_single_container_failure_has_no_compose_hint(fake_host, monkeypatch, caplog):
    monkeypatch.setattr(health_check, "probe_public_endpoint", lambda server_ip: None)

    with caplog.at_level("WARNING"):
        health_check.validate_deployment(fake_host, server_ip="203.0.113.10", app_port=8080, sleep=lambda _: None)

    assert "docker-compose.yml" not in caplog.text
