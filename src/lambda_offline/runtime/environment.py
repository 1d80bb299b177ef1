"""
Builds the environment a Go handler sees when it runs under mock-lambda.
"""
from __future__ import annotations

import json
import logging
import os
import subprocess
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from lambda_offline.credentials.session_cache import Credentials
from lambda_offline.exceptions import ToolchainError

REQUEST_AUTHORIZER = "REQUEST"
TOKEN_AUTHORIZER = "TOKEN"

# InvocationContext attribute -> (platform key, environment variable)
_CONTEXT_FIELDS = (
    ("log_group_name", "logGroupName", "AWS_LAMBDA_LOG_GROUP_NAME"),
    ("log_stream_name", "logStreamName", "AWS_LAMBDA_LOG_STREAM_NAME"),
    ("function_name", "functionName", "AWS_LAMBDA_FUNCTION_NAME"),
    ("memory_limit_in_mb", "memoryLimitInMB", "AWS_LAMBDA_FUNCTION_MEMORY_SIZE"),
    ("function_version", "functionVersion", "AWS_LAMBDA_FUNCTION_VERSION"),
)


@dataclass
class InvocationContext:
    log_group_name: Optional[str] = None
    log_stream_name: Optional[str] = None
    function_name: Optional[str] = None
    memory_limit_in_mb: Optional[Any] = None
    function_version: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "InvocationContext":
        known = {key for _, key, _ in _CONTEXT_FIELDS}
        kwargs = {attr: data.get(key) for attr, key, _ in _CONTEXT_FIELDS}
        extra = {k: v for k, v in data.items() if k not in known}
        return cls(extra=extra, **kwargs)

    def to_mapping(self) -> Dict[str, Any]:
        out = dict(self.extra)
        for attr, key, _ in _CONTEXT_FIELDS:
            out[key] = getattr(self, attr)
        return out


def _as_context(context) -> InvocationContext:
    if isinstance(context, InvocationContext):
        return context
    return InvocationContext.from_mapping(context or {})


def authorizer_flags(event: Mapping[str, Any]) -> Dict[str, bool]:
    event_type = event.get("type") if isinstance(event, Mapping) else None
    is_request = event_type == REQUEST_AUTHORIZER
    is_token = event_type == TOKEN_AUTHORIZER
    return {
        "IS_LAMBDA_AUTHORIZER": is_request or is_token,
        "IS_LAMBDA_REQUEST_AUTHORIZER": is_request,
        "IS_LAMBDA_TOKEN_AUTHORIZER": is_token,
    }


def parse_toolchain_env(text: str) -> Dict[str, str]:
    """
    Parses `go env` output, one KEY="VALUE" per line. Single-quoted values
    (newer Go releases on Unix) are accepted too.
    """
    env = {}
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        key, sep, value = line.partition("=")
        if not sep:
            env[key] = ""
            continue
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]
        env[key] = value
    return env


class ToolchainEnvironment:
    """Runs `go env` at most once and keeps the parsed result."""

    def __init__(self, go_bin: str = "go"):
        self.go_bin = go_bin
        self.logger = logging.getLogger(self.__class__.__name__)
        self._env: Optional[Dict[str, str]] = None

    def get(self) -> Dict[str, str]:
        if self._env is None:
            self._env = self._query()
        return self._env

    def invalidate(self) -> None:
        self._env = None

    def _query(self) -> Dict[str, str]:
        self.logger.debug(f"Querying toolchain environment with '{self.go_bin} env'")
        try:
            result = subprocess.run(
                [self.go_bin, "env"],
                capture_output=True,
                text=True,
                encoding="utf-8",
                check=True,
            )
        except FileNotFoundError as e:
            raise ToolchainError(f"Go toolchain not found: {self.go_bin}") from e
        except subprocess.CalledProcessError as e:
            raise ToolchainError(f"'{self.go_bin} env' failed: {e.stderr or e}") from e
        return parse_toolchain_env(result.stdout or result.stderr or "")


def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def compose_environment(
    base_env: Mapping[str, str],
    toolchain_env: Mapping[str, str],
    credentials: Credentials,
    profile: str,
    context,
    event: Mapping[str, Any],
    path: Optional[str] = None,
) -> Dict[str, str]:
    ctx = _as_context(context)
    env: Dict[str, str] = {}
    env.update(base_env or {})
    env.update(toolchain_env or {})

    env["AWS_ACCESS_KEY_ID"] = credentials.access_key_id
    env["AWS_SECRET_ACCESS_KEY"] = credentials.secret_access_key
    env["AWS_SESSION_TOKEN"] = credentials.session_token
    env["AWS_PROFILE"] = profile

    for attr, _, var in _CONTEXT_FIELDS:
        value = getattr(ctx, attr)
        if value is not None:
            env[var] = _render(value)

    env["LAMBDA_EVENT"] = json.dumps(event, default=str)
    env["LAMBDA_CONTEXT"] = json.dumps(ctx.to_mapping(), default=str)

    for var, flag in authorizer_flags(event).items():
        env[var] = _render(flag)

    if path is None:
        path = os.environ.get("PATH")
    if path is not None:
        env["PATH"] = path
    return env
