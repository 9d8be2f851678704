"""Data models for the response-extraction engine"""

import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GenerationKind(str, Enum):
    """What the target model is expected to produce"""
    TEXT = 'text'
    IMAGE = 'image'


class CandidateKind(str, Enum):
    TEXT = 'text'
    IMAGE = 'image'


class RunOutcome(str, Enum):
    SUCCESS = 'success'
    TIMEOUT = 'timeout'
    ERROR = 'error'


class SettledBy(str, Enum):
    """Which path of the race produced the terminal result"""
    POLL = 'settled-by-poll'
    COMPLETION = 'settled-by-completion-then-retry'
    FALLBACK = 'settled-by-fallback'
    EXHAUSTED = 'exhausted'


class RequestContext(BaseModel):
    """A single submitted question. Owned by one extraction run."""
    model_config = ConfigDict(frozen=True)

    question: str
    image_url: Optional[str] = None
    document_url: Optional[str] = None
    search_enabled: bool = False
    generation_kind: GenerationKind = GenerationKind.TEXT
    correlation_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:8])

    @field_validator('image_url', 'document_url')
    @classmethod
    def _check_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value.lower().startswith(('http://', 'https://')):
            raise ValueError(f"Attachment reference must be an http(s) URL: {value!r}")
        return value

    @property
    def is_image_generation(self) -> bool:
        return self.generation_kind == GenerationKind.IMAGE

    @property
    def prompt_text(self) -> str:
        """Text actually typed into the composer (attachment URLs first)"""
        references = [url for url in (self.image_url, self.document_url) if url]
        if not references:
            return self.question
        return ''.join(f"{url}\n" for url in references) + '\n' + self.question


class ExtractionCandidate(BaseModel):
    """Content pulled from the page, not yet validated"""
    kind: CandidateKind
    value: Optional[str] = None
    source_locator: Optional[str] = None
    data: Optional[bytes] = Field(default=None, repr=False)
    strategy: str = 'unknown'

    @classmethod
    def text(cls, value: str, strategy: str) -> 'ExtractionCandidate':
        return cls(kind=CandidateKind.TEXT, value=value, strategy=strategy)

    @classmethod
    def image(cls, source_locator: str, strategy: str, data: Optional[bytes] = None) -> 'ExtractionCandidate':
        return cls(kind=CandidateKind.IMAGE, source_locator=source_locator, data=data, strategy=strategy)

    @property
    def is_image(self) -> bool:
        return self.kind == CandidateKind.IMAGE

    def preview(self, limit: int = 100) -> str:
        if self.is_image:
            size = len(self.data) if self.data is not None else 0
            return f"<image {self.source_locator[:limit] if self.source_locator else '?'} ({size} bytes)>"
        return (self.value or '')[:limit]


class PageObservation(BaseModel):
    """One read-only probe of page activity"""
    loading: bool = False
    content_length: int = 0
    completion_marker: bool = False


class CompletionSignal(BaseModel):
    completed: bool
    elapsed_ms: int
    reason: str = ''


class PollSchedule(BaseModel):
    """Front-loaded sleep schedule between extraction attempts (milliseconds)"""
    fast_delay_ms: int = 100
    fast_attempts: int = 3
    warm_delay_ms: int = 200
    warm_attempts: int = 8
    steady_delay_ms: int = 400
    steady_attempts: int = 15
    steady_window_ms: int = 8000
    slow_delay_ms: int = 600
    slow_window_ms: int = 15000
    idle_delay_ms: int = 1000

    def delay_for(self, attempt: int, elapsed_ms: float) -> int:
        """
        Sleep after the given (1-based) attempt.

        Args:
            attempt: Number of the attempt that just finished
            elapsed_ms: Time since the run started

        Returns:
            Delay in milliseconds before the next attempt
        """
        if attempt <= self.fast_attempts:
            return self.fast_delay_ms
        if attempt <= self.warm_attempts:
            return self.warm_delay_ms
        if attempt <= self.steady_attempts and elapsed_ms < self.steady_window_ms:
            return self.steady_delay_ms
        if elapsed_ms < self.slow_window_ms:
            return self.slow_delay_ms
        return self.idle_delay_ms


class AttemptBudget(BaseModel):
    """Fixed at run start, read-only thereafter"""
    model_config = ConfigDict(frozen=True)

    max_attempts: int
    overall_deadline_ms: int
    poll_schedule: PollSchedule = Field(default_factory=PollSchedule)


class RunResult(BaseModel):
    """Terminal result of one extraction run"""
    outcome: RunOutcome
    elapsed_ms: int
    candidate: Optional[ExtractionCandidate] = None
    settled_by: SettledBy = SettledBy.EXHAUSTED
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == RunOutcome.SUCCESS and self.candidate is not None

    @property
    def text(self) -> Optional[str]:
        if self.succeeded and not self.candidate.is_image:
            return self.candidate.value
        return None

    @property
    def image(self) -> Optional[bytes]:
        if self.succeeded and self.candidate.is_image:
            return self.candidate.data
        return None
