"""
Local invocation harness for Go Lambda handlers.

One GoRunner is created per function and reused across invocations. Each
`run` stages the handler, runs it with `go run` under a Lambda-like
environment, removes the staged copy and returns the payload the handler
printed through mock-lambda.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Callable, Mapping, Optional

from lambda_offline.config import HarnessSettings
from lambda_offline.credentials.session_cache import CredentialCache
from lambda_offline.exceptions import HandlerProcessError
from lambda_offline.runtime.demux import PAYLOAD_IDENTIFIER, demux
from lambda_offline.runtime.environment import ToolchainEnvironment, compose_environment
from lambda_offline.runtime.launcher import ensure_mock_runtime, launch, relative_to_cwd
from lambda_offline.runtime.stager import ArtifactStager

IDLE = "idle"
STAGING = "staging"
AWAITING_CREDENTIALS = "awaiting_credentials"
LAUNCHING = "launching"
DEMUXING = "demuxing"


class GoRunner:
    """
    Args:
        handler_path: Handler location without the `.go` suffix.
        provider: Provider options; only `profile` is read.
        env: Base environment for the child process.
        log: Sink for the handler's diagnostic output. Defaults to `print`.
        settings: Harness settings; read from the environment when omitted.
        credential_cache: Shared cache, mainly for tests.
        stager: Artifact stager, mainly for tests.
        toolchain_env: Cached `go env` reader, mainly for tests.
    """

    def __init__(
        self,
        handler_path: str,
        provider: Optional[Mapping[str, Any]] = None,
        env: Optional[Mapping[str, str]] = None,
        log: Optional[Callable[[str], None]] = None,
        settings: Optional[HarnessSettings] = None,
        credential_cache: Optional[CredentialCache] = None,
        stager: Optional[ArtifactStager] = None,
        toolchain_env: Optional[ToolchainEnvironment] = None,
    ):
        self.settings = settings or HarnessSettings.from_env()
        self.handler_path = handler_path
        self.profile = (provider or {}).get("profile") or self.settings.profile
        self.env = dict(env or {})
        self.log = log or print
        self.logger = logging.getLogger(self.__class__.__name__)
        self.credential_cache = credential_cache or CredentialCache(region=self.settings.region)
        self.stager = stager or ArtifactStager()
        self.toolchain_env = toolchain_env or ToolchainEnvironment(self.settings.go_bin)
        self.state = IDLE

        if not self.settings.skip_mock_install:
            ensure_mock_runtime(self.settings.go_bin)

    def __enter__(self) -> "GoRunner":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    def run(self, event: Mapping[str, Any], context) -> Any:
        try:
            self.state = STAGING
            artifact = self.stager.stage(self.handler_path)
            go_env = self.toolchain_env.get()

            self.state = AWAITING_CREDENTIALS
            credentials = self.credential_cache.get(self.profile)

            self.state = LAUNCHING
            child_env = compose_environment(
                base_env=self.env,
                toolchain_env=go_env,
                credentials=credentials,
                profile=self.profile,
                context=context,
                event=event,
                path=os.environ.get("PATH"),
            )
            artifact_arg = relative_to_cwd(artifact.temp_file_path)
            self.logger.debug(f"Invoking {self.handler_path} via {artifact_arg}")
            try:
                output = launch(self.settings.go_bin, ["run", artifact_arg], child_env)
            finally:
                self.stager.cleanup()

            if output.stderr:
                raise HandlerProcessError(output.stderr, output.stdout, output.returncode)
            if output.returncode != 0:
                raise HandlerProcessError("", output.stdout, output.returncode)

            self.state = DEMUXING
            result = demux(output.stdout, PAYLOAD_IDENTIFIER, self.settings.success_policy)
            self.log(result.log_text)
            return result.payload
        finally:
            if self.stager.temp_dir_path is not None:
                self.stager.cleanup()
            self.state = IDLE

    def cleanup(self) -> None:
        self.credential_cache.clear()
        self.toolchain_env.invalidate()
        self.stager.cleanup()
