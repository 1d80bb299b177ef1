"""
Short-term AWS session credentials shared by every invocation of one harness.

Credentials come from `sts:GetSessionToken` with the minimum session duration
and are dropped locally SESSION_TIMEOUT_S after acquisition, ahead of the real
expiry, so a handler never runs with a token that is about to lapse.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from lambda_offline.exceptions import CredentialAcquisitionError

MIN_ALLOWED_SESSION_DURATION_S = 900
SESSION_TIMEOUT_S = 850


@dataclass(frozen=True)
class Credentials:
    access_key_id: str
    secret_access_key: str
    session_token: str
    expires_at: Optional[datetime] = None

    @classmethod
    def from_sts(cls, payload: dict) -> "Credentials":
        return cls(
            access_key_id=payload["AccessKeyId"],
            secret_access_key=payload["SecretAccessKey"],
            session_token=payload["SessionToken"],
            expires_at=payload.get("Expiration"),
        )


class CredentialCache:
    """
    Single-slot cache of session credentials.

    Args:
        session_factory: Callable returning a boto3-like session for a profile
            (called as `session_factory(profile_name=..., region_name=...)`).
        clock: Monotonic clock in seconds; injectable for tests.
        timeout_s: Local lifetime of cached credentials.
        use_timer: Also arm a background timer that clears the slot on expiry.
        region: Region for the STS client, if the profile does not set one.
    """

    def __init__(
        self,
        session_factory: Callable[..., Any] = boto3.Session,
        clock: Callable[[], float] = time.monotonic,
        timeout_s: float = SESSION_TIMEOUT_S,
        use_timer: bool = True,
        region: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.timeout_s = timeout_s
        self.use_timer = use_timer
        self.region = region
        self.logger = logging.getLogger(self.__class__.__name__)
        self._lock = threading.Lock()
        self._credentials: Optional[Credentials] = None
        self._deadline: Optional[float] = None
        self._timer: Optional[threading.Timer] = None

    def get(self, profile_name: str) -> Credentials:
        with self._lock:
            if self._credentials is not None and not self._expired():
                return self._credentials
            self._reset()

        credentials = self._acquire(profile_name)

        with self._lock:
            self._credentials = credentials
            self._deadline = self.clock() + self.timeout_s
            if self.use_timer:
                timer = threading.Timer(self.timeout_s, self._on_timer)
                timer.daemon = True
                self._timer = timer
                timer.start()
        return credentials

    def is_valid(self) -> bool:
        with self._lock:
            return self._credentials is not None and not self._expired()

    def clear(self) -> None:
        with self._lock:
            self._reset()

    def _expired(self) -> bool:
        return self._deadline is not None and self.clock() >= self._deadline

    def _reset(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._credentials = None
        self._deadline = None

    def _on_timer(self, timer: Optional[threading.Timer] = None) -> None:
        fired = timer if timer is not None else threading.current_thread()
        with self._lock:
            # a stale timer must not drop credentials acquired after it fired
            if fired is not self._timer:
                return
            self.logger.debug("Session credentials reached local timeout, clearing")
            self._timer = None
            self._credentials = None
            self._deadline = None

    def _acquire(self, profile_name: str) -> Credentials:
        self.logger.info(f"Requesting session credentials for profile '{profile_name}'")
        try:
            session = self.session_factory(profile_name=profile_name, region_name=self.region)
            sts = session.client("sts")
            resp = sts.get_session_token(DurationSeconds=MIN_ALLOWED_SESSION_DURATION_S)
            return Credentials.from_sts(resp["Credentials"])
        except (BotoCoreError, ClientError, KeyError) as e:
            raise CredentialAcquisitionError(profile_name, str(e)) from e
