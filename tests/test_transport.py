"""Tests for commdash.transport — HTTP/shell clients and their in-memory doubles."""

from __future__ import annotations

import sys
from unittest.mock import MagicMock

import pytest
import requests

from commdash.errors import (
    CommandFailedError,
    CommandNotFoundError,
    CommandTimeoutError,
    EndpointNotFoundError,
    EnvironmentMismatchError,
    HTTPStatusError,
    InvalidURLError,
    MissingHeadersError,
    NetworkError,
    TransportTimeoutError,
    WorkingDirectoryMismatchError,
)
from commdash.outcome import Failure, Success
from commdash.transport.http import RequestsHTTPClient, validate_url
from commdash.transport.mock import Interaction, MockHTTPClient, MockShellExecutor
from commdash.transport.shell import SubprocessShellExecutor


# ── MockHTTPClient ────────────────────────────────────────────────

class TestMockHTTPClient:
    @pytest.mark.asyncio
    async def test_registered_response(self, http):
        http.register_response("https://api.test/a", '{"ok": true}')
        assert await http.get("https://api.test/a") == '{"ok": true}'
        assert await http.post("https://api.test/a", "{}") == '{"ok": true}'
        assert [r.method for r in http.requests] == ["GET", "POST"]
        assert http.requests[1].body == "{}"

    @pytest.mark.asyncio
    async def test_unregistered_endpoint(self, http):
        with pytest.raises(EndpointNotFoundError) as exc:
            await http.get("https://api.test/missing")
        assert exc.value.url == "https://api.test/missing"

    @pytest.mark.asyncio
    async def test_invalid_url(self, http):
        with pytest.raises(InvalidURLError):
            await http.get("ftp://files.test/x")

    @pytest.mark.asyncio
    async def test_registered_error(self, http):
        http.register_error("https://api.test/a", HTTPStatusError(503, "unavailable"))
        with pytest.raises(HTTPStatusError) as exc:
            await http.put("https://api.test/a")
        assert exc.value.status == 503

    @pytest.mark.asyncio
    async def test_later_registration_replaces_earlier(self, http):
        http.register_response("https://api.test/a", "body")
        http.register_error("https://api.test/a", NetworkError("down"))
        with pytest.raises(NetworkError):
            await http.get("https://api.test/a")
        http.register_response("https://api.test/a", "body again")
        assert await http.get("https://api.test/a") == "body again"

    @pytest.mark.asyncio
    async def test_required_headers(self, http):
        http.register_response(
            "https://api.test/a", "ok",
            required_headers={"Authorization": "Bearer t", "X-Team": "core"},
        )
        with pytest.raises(MissingHeadersError) as exc:
            await http.get("https://api.test/a", headers={"Authorization": "Bearer t"})
        assert exc.value.headers == ["X-Team"]

        with pytest.raises(MissingHeadersError):
            await http.get("https://api.test/a", headers={"Authorization": "Bearer x", "X-Team": "core"})

        ok = await http.get("https://api.test/a", headers={"Authorization": "Bearer t", "X-Team": "core"})
        assert ok == "ok"

    @pytest.mark.asyncio
    async def test_reset(self, http):
        http.register_response("https://api.test/a", "ok")
        await http.get("https://api.test/a")
        http.reset()
        assert http.requests == []
        with pytest.raises(EndpointNotFoundError):
            await http.get("https://api.test/a")

    def test_registrations_are_outcomes(self, http):
        http.register_response("https://api.test/a", "ok")
        http.register_error("https://api.test/b", NetworkError("down"))
        assert isinstance(http._endpoints["https://api.test/a"].outcome, Success)
        assert isinstance(http._endpoints["https://api.test/b"].outcome, Failure)


# ── MockShellExecutor ─────────────────────────────────────────────

class TestMockShellExecutor:
    @pytest.mark.asyncio
    async def test_registered_output(self, shell):
        shell.register_output("ls", "a\nb\n")
        assert await shell.execute("ls") == "a\nb\n"
        assert shell.history == ["ls"]

    @pytest.mark.asyncio
    async def test_unregistered_command(self, shell):
        with pytest.raises(CommandNotFoundError):
            await shell.execute("rm -rf /")
        assert shell.history == ["rm -rf /"]

    @pytest.mark.asyncio
    async def test_registered_error(self, shell):
        shell.register_error("make", CommandFailedError(2, "missing target"))
        with pytest.raises(CommandFailedError) as exc:
            await shell.execute("make")
        assert exc.value.exit_code == 2
        assert exc.value.stderr == "missing target"

    @pytest.mark.asyncio
    async def test_working_directory(self, shell):
        shell.register_output("pwd", "/srv\n", working_directory="/srv")
        assert await shell.execute("pwd", working_directory="/srv") == "/srv\n"

        with pytest.raises(WorkingDirectoryMismatchError) as exc:
            await shell.execute("pwd", working_directory="/tmp")
        assert (exc.value.expected, exc.value.actual) == ("/srv", "/tmp")

        with pytest.raises(WorkingDirectoryMismatchError) as exc:
            await shell.execute("pwd")
        assert exc.value.actual is None

    @pytest.mark.asyncio
    async def test_environment(self, shell):
        shell.register_output("env", "TZ=UTC", environment={"TZ": "UTC"})
        assert await shell.execute("env", environment={"TZ": "UTC"}) == "TZ=UTC"
        with pytest.raises(EnvironmentMismatchError):
            await shell.execute("env", environment={"TZ": "CET"})
        with pytest.raises(EnvironmentMismatchError):
            await shell.execute("env")

    @pytest.mark.asyncio
    async def test_unconstrained_registration_accepts_any_context(self, shell):
        shell.register_output("date", "today")
        assert await shell.execute("date", working_directory="/x", environment={"A": "1"}) == "today"

    @pytest.mark.asyncio
    async def test_interactive_returns_last_output(self, shell):
        shell.register_interactive("login", [
            Interaction.prompt("user?"),
            Interaction.input("dana"),
            Interaction.output("welcome"),
            Interaction.output("ready"),
        ])
        assert await shell.execute_interactive("login", ["dana"]) == "ready"
        with pytest.raises(CommandNotFoundError):
            await shell.execute_interactive("logout", [])

    @pytest.mark.asyncio
    async def test_reset(self, shell):
        shell.register_output("ls", "")
        await shell.execute("ls")
        shell.reset()
        assert shell.history == []
        with pytest.raises(CommandNotFoundError):
            await shell.execute("ls")


# ── RequestsHTTPClient ────────────────────────────────────────────

def _response(status, text=""):
    r = MagicMock()
    r.status_code = status
    r.text = text
    r.reason = "reason"
    return r


class TestRequestsHTTPClient:
    def test_validate_url(self):
        validate_url("https://api.test/x")
        with pytest.raises(InvalidURLError):
            validate_url("api.test/x")
        with pytest.raises(InvalidURLError):
            validate_url("https://")

    @pytest.mark.asyncio
    async def test_success_returns_body(self):
        session = MagicMock()
        session.request.return_value = _response(200, '{"a": 1}')
        client = RequestsHTTPClient(session=session, default_headers={"User-Agent": "commdash"})

        body = await client.post("https://api.test/x", "{}", headers={"X": "1"})

        assert body == '{"a": 1}'
        args, kwargs = session.request.call_args
        assert args == ("POST", "https://api.test/x")
        assert kwargs["data"] == b"{}"
        assert kwargs["headers"] == {"User-Agent": "commdash", "X": "1"}

    @pytest.mark.asyncio
    async def test_status_mapping(self):
        session = MagicMock()
        client = RequestsHTTPClient(session=session)

        session.request.return_value = _response(404)
        with pytest.raises(EndpointNotFoundError):
            await client.get("https://api.test/x")

        session.request.return_value = _response(500, "server exploded")
        with pytest.raises(HTTPStatusError) as exc:
            await client.get("https://api.test/x")
        assert exc.value.status == 500
        assert "server exploded" in str(exc.value)

    @pytest.mark.asyncio
    async def test_exception_mapping(self):
        session = MagicMock()
        client = RequestsHTTPClient(session=session, timeout=2.5)

        session.request.side_effect = requests.Timeout("slow")
        with pytest.raises(TransportTimeoutError) as exc:
            await client.get("https://api.test/x")
        assert exc.value.seconds == 2.5

        session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(NetworkError):
            await client.get("https://api.test/x")

    @pytest.mark.asyncio
    async def test_invalid_url_never_sent(self):
        session = MagicMock()
        with pytest.raises(InvalidURLError):
            await RequestsHTTPClient(session=session).get("not a url")
        session.request.assert_not_called()


# ── SubprocessShellExecutor ───────────────────────────────────────

PY = sys.executable


@pytest.mark.slow
class TestSubprocessShellExecutor:
    @pytest.mark.asyncio
    async def test_stdout(self):
        out = await SubprocessShellExecutor().execute(f'"{PY}" -c "print(42)"')
        assert out.strip() == "42"

    @pytest.mark.asyncio
    async def test_working_directory_and_environment(self, tmp_path):
        script = "import os; print(os.getcwd()); print(os.environ['COMMDASH_TEST'])"
        out = await SubprocessShellExecutor().execute(
            f'"{PY}" -c "{script}"',
            working_directory=str(tmp_path),
            environment={"COMMDASH_TEST": "yes"},
        )
        cwd, value = out.strip().splitlines()
        assert cwd == str(tmp_path.resolve()) or cwd == str(tmp_path)
        assert value == "yes"

    @pytest.mark.asyncio
    async def test_nonzero_exit(self):
        cmd = f'"{PY}" -c "import sys; sys.stderr.write(\'bad\'); sys.exit(3)"'
        with pytest.raises(CommandFailedError) as exc:
            await SubprocessShellExecutor().execute(cmd)
        assert exc.value.exit_code == 3
        assert exc.value.stderr == "bad"

    @pytest.mark.asyncio
    async def test_missing_command(self):
        with pytest.raises(CommandNotFoundError):
            await SubprocessShellExecutor().execute("commdash-definitely-not-a-command")

    @pytest.mark.asyncio
    async def test_timeout(self):
        with pytest.raises(CommandTimeoutError):
            await SubprocessShellExecutor(timeout=0.2).execute(
                f'"{PY}" -c "import time; time.sleep(5)"'
            )

    @pytest.mark.asyncio
    async def test_interactive_feeds_stdin(self):
        cmd = f'"{PY}" -c "import sys; print(sys.stdin.read().upper(), end=\'\')"'
        out = await SubprocessShellExecutor().execute_interactive(cmd, ["ab", "cd"])
        assert out == "AB\nCD\n"
