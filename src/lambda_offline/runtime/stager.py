"""
Stages a runnable copy of a Go handler next to its source tree.

The copy lives in `<handler dir>/../tmp/main.go` with the aws-lambda-go
runtime import swapped for the mock-lambda test double, which reads the event
from the environment instead of waiting on the Lambda runtime API.
"""
from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

LAMBDA_IMPORT = '"github.com/aws/aws-lambda-go/lambda"'
MOCK_LAMBDA_IMPORT = 'lambda "github.com/icarus-sullivan/mock-lambda"'
SOURCE_SUFFIX = ".go"
TMP_DIR_NAME = "tmp"
ARTIFACT_NAME = "main.go"

logger = logging.getLogger(__name__)

ErrorHook = Callable[[str, BaseException], None]


def _log_swallowed(stage: str, exc: BaseException) -> None:
    logger.warning(f"Ignored {stage} failure: {exc}")


def rewrite_source(source: str) -> str:
    return source.replace(LAMBDA_IMPORT, MOCK_LAMBDA_IMPORT, 1)


@dataclass(frozen=True)
class StagedArtifact:
    source_path: Path
    temp_dir_path: Path
    temp_file_path: Path


class ArtifactStager:
    """
    Owns the temporary directory of the current invocation.

    File-system failures while creating, writing or removing the directory do
    not fail the invocation; they are passed to `on_error(stage, exc)`.
    """

    def __init__(self, on_error: Optional[ErrorHook] = None):
        self.on_error = on_error or _log_swallowed
        self.temp_dir_path: Optional[Path] = None
        self.temp_file_path: Optional[Path] = None

    @staticmethod
    def temp_dir_for(handler_path) -> Path:
        # "main" and "hello/main" both stage into <cwd>/tmp
        return (Path(handler_path).parent.parent / TMP_DIR_NAME).resolve()

    def stage(self, handler_path) -> StagedArtifact:
        handler = Path(handler_path)
        source_path = handler.with_name(handler.name + SOURCE_SUFFIX)
        source = source_path.read_text(encoding="utf-8")

        self.temp_dir_path = self.temp_dir_for(handler)
        self.temp_file_path = self.temp_dir_path / ARTIFACT_NAME

        try:
            self.temp_dir_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.on_error("mkdir", e)

        try:
            self.temp_file_path.write_text(rewrite_source(source), encoding="utf-8")
        except OSError as e:
            self.on_error("write", e)

        return StagedArtifact(
            source_path=source_path,
            temp_dir_path=self.temp_dir_path,
            temp_file_path=self.temp_file_path,
        )

    def cleanup(self) -> None:
        try:
            if self.temp_dir_path is not None:
                shutil.rmtree(self.temp_dir_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            self.on_error("cleanup", e)
        finally:
            self.temp_dir_path = None
            self.temp_file_path = None
