"""Data models for AudioScribe."""

import enum
import os
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

@dataclass(frozen=True)
class TimedFragment:
    """One timed unit of recognized text, as emitted by the recognition engine."""
    text: str
    start: float
    end: float

@dataclass(frozen=True)
class SubtitleChunk:
    """A merged run of fragments shown as one subtitle cue or text line."""
    text: str
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


class TranscriptFormat(str, enum.Enum):
    """Output formats a transcript can be written in."""
    TXT = "txt"
    SRT = "srt"

    @property
    def file_extension(self) -> str:
        return self.value

    @property
    def description(self) -> str:
        if self is TranscriptFormat.SRT:
            return "SubRip (SRT) - Subtitles with timestamps"
        return "Plain Text (TXT) - Text only, no timestamps"


class TimestampStyle(str, enum.Enum):
    """Leading timestamp rendered before each line of a plain-text transcript."""
    NONE = "none"
    READABLE = "readable" # [MM:SS] or [HH:MM:SS]
    SECONDS = "seconds" # [83.5s]


class StatusKind(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ItemStatus:
    """
    Status of a work item: Pending | Processing | Completed | Failed(reason).

    Only ``failed`` carries a reason. Use the constructors below rather than
    building instances by hand.
    """
    kind: StatusKind
    reason: Optional[str] = None

    @classmethod
    def pending(cls) -> "ItemStatus":
        return cls(StatusKind.PENDING)

    @classmethod
    def processing(cls) -> "ItemStatus":
        return cls(StatusKind.PROCESSING)

    @classmethod
    def completed(cls) -> "ItemStatus":
        return cls(StatusKind.COMPLETED)

    @classmethod
    def failed(cls, reason: str) -> "ItemStatus":
        return cls(StatusKind.FAILED, reason)

    @property
    def is_terminal(self) -> bool:
        return self.kind in (StatusKind.COMPLETED, StatusKind.FAILED)

    @property
    def description(self) -> str:
        if self.kind is StatusKind.PENDING:
            return "Waiting..."
        if self.kind is StatusKind.PROCESSING:
            return "Transcribing..."
        if self.kind is StatusKind.COMPLETED:
            return "Completed"
        return f"Failed: {self.reason}"


@dataclass
class WorkItem:
    """One audio file owned by the transcription queue."""
    source_path: str
    output_path: str
    status: ItemStatus = field(default_factory=ItemStatus.pending)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    progress: float = 0.0
    created_at: float = field(default_factory=time.time)

    @property
    def file_name(self) -> str:
        return os.path.basename(self.source_path)


@dataclass
class TranscriptionResult:
    """Machine-readable summary of one transcription run."""
    success: bool
    output_path: Optional[str] = None
    error: Optional[str] = None
    duration: Optional[float] = None # Total audio duration in seconds
    elapsed_time: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "outputPath": self.output_path,
            "error": self.error,
            "duration": self.duration,
            "elapsedTime": self.elapsed_time,
        }
