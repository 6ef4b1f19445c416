from enum import Enum, auto
from typing import Any, Optional

from logging import getLogger

logger = getLogger(__name__)


class HandleDirection(Enum):
    INPUT = auto()
    OUTPUT = auto()


class Capability(Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"

    @staticmethod
    def validate(value: Any, capability: 'Capability') -> bool:
        if value is None:
            return True
        # media travels as a remote URL or a base64 data URL
        if not isinstance(value, str):
            return False
        if not value.startswith("data:"):
            return True
        mime = value[5:].split(",", 1)[0].split(";", 1)[0].lower()
        if capability == Capability.TEXT:
            return not mime.startswith(("image/", "video/"))
        return mime.startswith(f"{capability.value}/")


class NodeKind(Enum):
    TEXT = "text"
    PROMPT = "prompt"
    IMAGE_UPLOAD = "image-upload"
    CROP_IMAGE = "crop-image"
    VIDEO_UPLOAD = "video-upload"
    EXTRACT_FRAME = "extract-frame"
    RUN_LLM = "run-llm"


class ExecutionStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStatus(Enum):
    # Non-terminal
    PENDING_VERSION = "PENDING_VERSION"
    DELAYED = "DELAYED"
    WAITING_FOR_DEPLOY = "WAITING_FOR_DEPLOY"
    QUEUED = "QUEUED"
    EXECUTING = "EXECUTING"
    REATTEMPTING = "REATTEMPTING"
    FROZEN = "FROZEN"
    # Terminal
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"
    CRASHED = "CRASHED"
    TIMED_OUT = "TIMED_OUT"
    SYSTEM_FAILURE = "SYSTEM_FAILURE"
    EXPIRED = "EXPIRED"
    INTERRUPTED = "INTERRUPTED"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional['JobStatus']:
        """Map a provider status string onto JobStatus; None when unrecognised."""
        if not raw:
            return None
        try:
            return cls(raw.upper())
        except ValueError:
            logger.warning(f"Unrecognised job status '{raw}', treating as in progress")
            return None

    def isTerminal(self) -> bool:
        return self in _TERMINAL_STATUSES

    def isSuccess(self) -> bool:
        return self == JobStatus.COMPLETED


_TERMINAL_STATUSES = frozenset({
    JobStatus.COMPLETED,
    JobStatus.FAILED,
    JobStatus.CANCELED,
    JobStatus.CRASHED,
    JobStatus.TIMED_OUT,
    JobStatus.SYSTEM_FAILURE,
    JobStatus.EXPIRED,
    JobStatus.INTERRUPTED,
})
