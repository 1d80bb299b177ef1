"""
Separates the handler's result from its diagnostic output.

mock-lambda prints the handler result on stdout as a single JSON line keyed
by PAYLOAD_IDENTIFIER, e.g. {"offline_payload": {"success": {...}}}. Every
other stdout line is ordinary handler logging.
"""
from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any, List

PAYLOAD_IDENTIFIER = "offline_payload"

logger = logging.getLogger(__name__)


class SuccessPolicy(enum.Enum):
    # a present "success" key wins, even when its value is falsy
    PRESENCE = "presence"
    # "success" is used only when truthy, otherwise "error" is considered
    TRUTHY = "truthy"


@dataclass
class DemuxResult:
    payload: Any = None
    found: bool = False
    diagnostics: List[str] = field(default_factory=list)
    marker_count: int = 0

    @property
    def log_text(self) -> str:
        return "\n".join(self.diagnostics)


def _select(record: Any, policy: SuccessPolicy):
    if not isinstance(record, dict):
        return False, None
    if policy is SuccessPolicy.PRESENCE:
        if "success" in record:
            return True, record["success"]
        if "error" in record:
            return True, record["error"]
        return False, None
    if record.get("success"):
        return True, record["success"]
    if record.get("error"):
        return True, record["error"]
    return False, None


def demux(
    stdout: str,
    marker: str = PAYLOAD_IDENTIFIER,
    policy: SuccessPolicy = SuccessPolicy.PRESENCE,
) -> DemuxResult:
    result = DemuxResult()
    for line in stdout.split("\n"):
        if line.endswith("\r"):
            line = line[:-1]
        if marker not in line:
            result.diagnostics.append(line)
            continue
        try:
            record = json.loads(line)[marker]
        except (ValueError, TypeError, KeyError):
            logger.debug(f"Dropped unparsable payload line: {line!r}")
            continue
        selected, value = _select(record, policy)
        if not selected:
            continue
        result.marker_count += 1
        result.payload = value
        result.found = True

    if result.marker_count > 1:
        logger.warning(f"Handler printed {result.marker_count} payload lines, using the last one")
    return result
