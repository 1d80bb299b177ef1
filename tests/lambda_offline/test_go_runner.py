import json
from pathlib import Path
from unittest.mock import Mock

import pytest

from lambda_offline.config import HarnessSettings
from lambda_offline.credentials.session_cache import CredentialCache
from lambda_offline.exceptions import CredentialAcquisitionError, HandlerProcessError
from lambda_offline.runtime.go_runner import IDLE, GoRunner
from lambda_offline.runtime.stager import MOCK_LAMBDA_IMPORT

HANDLER = 'package main\n\nimport "github.com/aws/aws-lambda-go/lambda"\n\nfunc main() { lambda.Start(h) }\n'
CONTEXT = {
    "logGroupName": "/aws/lambda/hello",
    "logStreamName": "stream",
    "functionName": "hello",
    "memoryLimitInMB": "128",
    "functionVersion": "$LATEST",
}
SETTINGS = HarnessSettings(skip_mock_install=True)


@pytest.fixture
def handler(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.chdir(tmp_path)
    src = tmp_path / "functions" / "hello"
    src.mkdir(parents=True)
    (src / "main.go").write_text(HANDLER, encoding="utf-8")
    return Path("functions") / "hello" / "main"


@pytest.fixture
def sts():
    session = Mock()
    client = session.client.return_value
    client.get_session_token.return_value = {
        "Credentials": {"AccessKeyId": "AKIA", "SecretAccessKey": "secret", "SessionToken": "token"}
    }
    client.session_factory = Mock(return_value=session)
    return client


class FakeToolchain:
    """Stands in for subprocess.run, answering `go env` and `go run`."""

    def __init__(self, stdout="", stderr="", returncode=0):
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        self.calls = []
        self.staged_source = None

    def __call__(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        if cmd[1] == "env":
            return Mock(stdout='GOPATH="/go"\n', stderr="", returncode=0)
        self.staged_source = Path(cmd[2]).read_text(encoding="utf-8")
        return Mock(stdout=self.stdout, stderr=self.stderr, returncode=self.returncode)

    def run_calls(self):
        return [c for c in self.calls if c[0][1] == "run"]


def _runner(handler, sts, logs, **kwargs):
    cache = CredentialCache(session_factory=sts.session_factory, use_timer=False)
    return GoRunner(
        str(handler),
        {"profile": "dev"},
        env={"HOME": "/home/dev"},
        log=logs.append,
        settings=SETTINGS,
        credential_cache=cache,
        **kwargs,
    )


def test_run_returns_payload_and_forwards_logs(handler, sts, monkeypatch):
    fake = FakeToolchain(stdout='log A\n{"offline_payload":{"success":{"x":1}}}\nlog B\n')
    monkeypatch.setattr("subprocess.run", fake)
    logs = []
    runner = _runner(handler, sts, logs)

    result = runner.run({"type": "REQUEST"}, CONTEXT)

    assert result == {"x": 1}
    assert logs == ["log A\nlog B\n"]
    (cmd, kwargs), = fake.run_calls()
    assert cmd == ["go", "run", str(Path("functions") / "tmp" / "main.go")]
    assert MOCK_LAMBDA_IMPORT in fake.staged_source
    env = kwargs["env"]
    assert env["HOME"] == "/home/dev"
    assert env["GOPATH"] == "/go"
    assert env["AWS_PROFILE"] == "dev"
    assert env["AWS_SESSION_TOKEN"] == "token"
    assert env["IS_LAMBDA_REQUEST_AUTHORIZER"] == "true"
    assert json.loads(env["LAMBDA_CONTEXT"]) == CONTEXT
    assert not (Path("functions") / "tmp").exists()
    assert runner.state == IDLE


def test_run_reuses_credentials_and_go_env(handler, sts, monkeypatch):
    fake = FakeToolchain(stdout='{"offline_payload":{"success":"ok"}}')
    monkeypatch.setattr("subprocess.run", fake)
    runner = _runner(handler, sts, [])

    runner.run({}, CONTEXT)
    runner.run({}, CONTEXT)

    assert sts.get_session_token.call_count == 1
    assert [c[0][1] for c in fake.calls] == ["env", "run", "run"]


def test_stderr_is_a_hard_failure(handler, sts, monkeypatch):
    fake = FakeToolchain(
        stdout='{"offline_payload":{"success":{"x":1}}}',
        stderr="panic: runtime error",
    )
    monkeypatch.setattr("subprocess.run", fake)
    logs = []
    runner = _runner(handler, sts, logs)

    with pytest.raises(HandlerProcessError) as exc_info:
        runner.run({}, CONTEXT)

    assert str(exc_info.value) == "panic: runtime error"
    assert logs == []
    assert not (Path("functions") / "tmp").exists()


def test_nonzero_exit_is_a_hard_failure(handler, sts, monkeypatch):
    monkeypatch.setattr("subprocess.run", FakeToolchain(returncode=2))
    runner = _runner(handler, sts, [])

    with pytest.raises(HandlerProcessError) as exc_info:
        runner.run({}, CONTEXT)
    assert exc_info.value.returncode == 2


def test_credential_failure_propagates_and_cleans_up(handler, sts, monkeypatch):
    fake = FakeToolchain()
    monkeypatch.setattr("subprocess.run", fake)
    sts.get_session_token.side_effect = CredentialAcquisitionError("dev", "denied")
    runner = _runner(handler, sts, [])

    with pytest.raises(CredentialAcquisitionError):
        runner.run({}, CONTEXT)

    assert fake.run_calls() == []
    assert not (Path("functions") / "tmp").exists()


def test_missing_marker_returns_none(handler, sts, monkeypatch):
    monkeypatch.setattr("subprocess.run", FakeToolchain(stdout="just logs\n"))
    logs = []
    assert _runner(handler, sts, logs).run({}, CONTEXT) is None
    assert logs == ["just logs\n"]


def test_cleanup_is_repeatable(handler, sts, monkeypatch):
    monkeypatch.setattr("subprocess.run", FakeToolchain(stdout=""))
    with _runner(handler, sts, []) as runner:
        runner.run({}, CONTEXT)
        assert runner.credential_cache.is_valid()
    assert not runner.credential_cache.is_valid()
    runner.cleanup()
    assert not (Path("functions") / "tmp").exists()


def test_default_profile_and_mock_install(handler, monkeypatch):
    calls = []
    monkeypatch.setattr("subprocess.run", lambda cmd, **kw: calls.append(cmd) or Mock(returncode=0))
    runner = GoRunner(str(handler), {}, env={}, settings=HarnessSettings())
    assert runner.profile == "default"
    assert calls[0][:2] == ["go", "get"]
