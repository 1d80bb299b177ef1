"""
Harness settings resolved from the environment.

Every setting has a default so a bare `GoRunner(...)` works; the
LAMBDA_OFFLINE_* variables let a developer override them without touching
the host configuration.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from lambda_offline.exceptions import ConfigurationError
from lambda_offline.runtime.demux import SuccessPolicy

DEFAULT_PROFILE = "default"
DEFAULT_GO_BIN = "go"

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("", "0", "false", "no", "off")


def _parse_bool(name: str, value: str) -> bool:
    v = value.strip().lower()
    if v in _TRUE_VALUES:
        return True
    if v in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


@dataclass(frozen=True)
class HarnessSettings:
    go_bin: str = DEFAULT_GO_BIN
    profile: str = DEFAULT_PROFILE
    region: Optional[str] = None
    skip_mock_install: bool = False
    success_policy: SuccessPolicy = SuccessPolicy.PRESENCE

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "HarnessSettings":
        env = os.environ if environ is None else environ
        policy_name = env.get("LAMBDA_OFFLINE_SUCCESS_POLICY", SuccessPolicy.PRESENCE.value)
        try:
            policy = SuccessPolicy(policy_name.strip().lower())
        except ValueError as e:
            choices = ", ".join(p.value for p in SuccessPolicy)
            raise ConfigurationError(
                f"LAMBDA_OFFLINE_SUCCESS_POLICY must be one of: {choices}"
            ) from e
        return cls(
            go_bin=env.get("LAMBDA_OFFLINE_GO_BIN") or DEFAULT_GO_BIN,
            profile=env.get("LAMBDA_OFFLINE_PROFILE") or DEFAULT_PROFILE,
            region=env.get("LAMBDA_OFFLINE_REGION") or None,
            skip_mock_install=_parse_bool(
                "LAMBDA_OFFLINE_SKIP_MOCK_INSTALL", env.get("LAMBDA_OFFLINE_SKIP_MOCK_INSTALL", "")
            ),
            success_policy=policy,
        )
