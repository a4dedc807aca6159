import base64
from pathlib import Path

import pytest
import requests

from logdiag.report import ReportError, resolve_endpoint, send_report

from conftest import FakeRunner

POINTER = base64.b64encode(b"https://example.org/pointer\n").decode()
ENDPOINT = "https://example.org/upload"


class _Response:
    def __init__(self, status_code: int, content: bytes) -> None:
        self.status_code = status_code
        self.content = content


def _header() -> str:
    return "OS: Debian GNU/Linux 12 (bookworm)\nLast updated Pi-Apps on: 01/02/2026\n"


def _serve_endpoint(monkeypatch: pytest.MonkeyPatch, status_code: int = 200) -> list[str]:
    fetched: list[str] = []

    def fake_get(url: str, timeout: float) -> _Response:
        fetched.append(url)
        return _Response(status_code, base64.b64encode(ENDPOINT.encode()) + b"\n")

    monkeypatch.setattr(requests, "get", fake_get)
    return fetched


def test_resolve_endpoint(monkeypatch: pytest.MonkeyPatch) -> None:
    fetched = _serve_endpoint(monkeypatch)
    assert resolve_endpoint(POINTER) == ENDPOINT
    assert fetched == ["https://example.org/pointer"]


def test_resolve_endpoint_http_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    _serve_endpoint(monkeypatch, status_code=404)
    with pytest.raises(ReportError, match="404"):
        resolve_endpoint(POINTER)


def test_send_report_uploads_formatted_log(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _serve_endpoint(monkeypatch)
    log = tmp_path / "Foo-install-fail.log"
    log.write_text("Failed to install Foo!\n", encoding="utf-8")
    runner = FakeRunner(tools=["curl"])

    result = send_report(log, _header, runner=runner, pointer=POINTER)
    assert result.sent
    assert result.message == "Error report sent successfully!"
    assert runner.calls == [["curl", "-F", f"file=@{log};filename=Foo-install-fail.txt", ENDPOINT]]
    assert log.read_text(encoding="utf-8").startswith("OS: Debian GNU/Linux 12 (bookworm)")


def test_send_report_upload_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _serve_endpoint(monkeypatch)
    log = tmp_path / "install.log"
    log.write_text("Failed to install Foo!\n", encoding="utf-8")
    runner = FakeRunner(tools=["curl"])
    runner.returncode = 7
    with pytest.raises(ReportError, match="curl failed"):
        send_report(log, _header, runner=runner, pointer=POINTER)


def test_send_report_requires_header(tmp_path: Path) -> None:
    log = tmp_path / "install.log"
    log.write_text("Failed to install Foo!\n", encoding="utf-8")
    runner = FakeRunner(tools=["curl"])
    result = send_report(log, lambda: "OS: Unknown\n", runner=runner, pointer=POINTER)
    assert not result.sent
    assert result.message == "Log file not sent - missing required header"
    assert runner.calls == []


def test_send_report_preconditions(tmp_path: Path) -> None:
    log = tmp_path / "install.log"
    log.write_text("Failed\n", encoding="utf-8")
    result = send_report(log, _header, runner=FakeRunner(), pointer=POINTER)
    assert not result.sent
    assert "curl command not found" in result.message

    result = send_report(tmp_path / "missing.log", _header, runner=FakeRunner(tools=["curl"]), pointer=POINTER)
    assert not result.sent
    assert "is not a valid file" in result.message
