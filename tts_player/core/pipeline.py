"""
Speech generation pipeline.

Validate -> chunk -> synthesize each chunk (with retry) and record it ->
assemble -> done. Runs are sequential and own their chunks and temporary
files, so no locking happens here; the ledger serializes its own writes.

Failure policy: when a chunk fails after retries the run stops with that
chunk's error. Records already written for earlier chunks stay in the
ledger and no partial audio is returned.
"""

import time
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from loguru import logger

from tts_player.config.loader import AppSettings, ProviderProfile
from tts_player.sdk.speech_client import SpeechClient
from tts_player.storage.models import AccountInfo, UsageRecord, UsageStats
from tts_player.storage.repository import UsageLedger
from .assembler import AudioAssembler, FFmpegConcatenator
from .chunker import TextChunk, split_text
from .errors import NetworkError, StorageError, TTSError
from .pricing import count_characters, estimate_cost
from .validation import validate_text, validate_voice


ACCOUNT_USAGE_WINDOW_DAYS = 30


class PipelineState(Enum):
    """Stages of a single generation call."""
    IDLE = "idle"
    VALIDATING = "validating"
    CHUNKING = "chunking"
    SYNTHESIZING = "synthesizing"
    ASSEMBLING = "assembling"
    RECORDING = "recording"
    DONE = "done"
    FAILED = "failed"


class SpeechPipeline:
    """Orchestrates long-text speech generation for one provider profile."""

    def __init__(
        self,
        profile: ProviderProfile,
        client: SpeechClient,
        assembler: AudioAssembler,
        ledger: Optional[UsageLedger] = None,
        pacing_delay: float = 0.2,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize the pipeline.

        Args:
            profile: Provider profile (limits and voice policy)
            client: Speech client for the same profile
            assembler: Audio assembler for multi-chunk output
            ledger: Optional usage ledger; without it nothing is recorded
            pacing_delay: Seconds to wait between chunk requests
            sleep: Function used for the pacing delay
        """
        self.profile = profile
        self.client = client
        self.assembler = assembler
        self.ledger = ledger
        self.pacing_delay = pacing_delay
        self._sleep = sleep
        self.state = PipelineState.IDLE
        self.last_error: Optional[TTSError] = None

    def _enter(self, state: PipelineState) -> None:
        self.state = state
        logger.debug("Pipeline state -> {state}", state=state.value)

    def generate(self, text: str, voice: str) -> bytes:
        """Generate speech with the profile's default model."""
        return self.generate_with_model(text, voice, self.profile.default_model)

    def generate_with_model(self, text: str, voice: str, model: str) -> bytes:
        """Generate speech for text of any length.

        Args:
            text: Text to speak
            voice: Voice identifier valid for the profile
            model: Provider model identifier

        Returns:
            Audio bytes for the whole (or, without ffmpeg, truncated) text

        Raises:
            ValidationError: Empty text, overlong text or unknown voice
            TTSError: First fatal synthesis, assembly or storage error
        """
        self.last_error = None
        try:
            return self._run(text, voice, model)
        except TTSError as error:
            self.last_error = error
            self._enter(PipelineState.FAILED)
            raise
        except BaseException:
            self._enter(PipelineState.FAILED)
            raise

    def _run(self, text: str, voice: str, model: str) -> bytes:
        self._enter(PipelineState.VALIDATING)
        validate_text(text, self.profile)
        voice = validate_voice(voice, self.profile)

        self._enter(PipelineState.CHUNKING)
        chunks = self.plan_chunks(text)

        segments: List[bytes] = []
        for chunk in chunks:
            if chunk.index > 0 and self.pacing_delay > 0:
                self._sleep(self.pacing_delay)
            self._enter(PipelineState.SYNTHESIZING)
            segments.append(self._synthesize_chunk(chunk, len(chunks), voice, model))

        self._enter(PipelineState.ASSEMBLING)
        audio = self.assembler.assemble(segments)

        # Per-chunk records are already written; nothing left to persist.
        self._enter(PipelineState.RECORDING)
        self._enter(PipelineState.DONE)
        return audio

    def plan_chunks(self, text: str) -> List[TextChunk]:
        """Split text for the profile, degrading to one chunk without a concatenator."""
        chunks = split_text(text, self.profile.chunk_size)
        if len(chunks) > 1:
            logger.info(
                "Text is {length:,} characters, split into {count} chunks",
                length=len(text),
                count=len(chunks),
            )
            if not self.assembler.can_concatenate():
                logger.warning(
                    "Audio concatenation tool not available, only the first {kept:,} of "
                    "{length:,} characters will be spoken",
                    kept=len(chunks[0]),
                    length=len(text),
                )
                chunks = chunks[:1]
        return chunks

    def _synthesize_chunk(self, chunk: TextChunk, total: int, voice: str, model: str) -> bytes:
        logger.info(
            "Generating audio for chunk {number} of {total} ({length} chars)",
            number=chunk.index + 1,
            total=total,
            length=len(chunk),
        )
        try:
            audio = self.client.synthesize_with_retry(chunk.text, voice, model)
        except TTSError as error:
            logger.error("Chunk {number} failed: {error}", number=chunk.index + 1, error=error)
            self._record_failure(chunk.text, voice, model, error)
            raise

        self._record(UsageRecord.for_attempt(chunk.text, voice, model, success=True))
        logger.debug("Chunk {number} generated {size} bytes", number=chunk.index + 1, size=len(audio))
        return audio

    def _record(self, record: UsageRecord) -> None:
        if self.ledger is not None:
            self.ledger.record(record)

    def _record_failure(self, text: str, voice: str, model: str, error: TTSError) -> None:
        """Best-effort: a ledger failure here must not mask the original error."""
        try:
            self._record(UsageRecord.for_attempt(
                text, voice, model, success=False, error_message=str(error)
            ))
        except StorageError as storage_error:
            logger.warning("Could not record failed attempt: {error}", error=storage_error)

    def _require_ledger(self) -> UsageLedger:
        if self.ledger is None:
            raise StorageError("Usage ledger not available")
        return self.ledger

    def get_usage_stats(self, days: int = 30) -> UsageStats:
        """Aggregate usage over the trailing window."""
        return self._require_ledger().stats(days)

    def get_usage_history(self, limit: int = 50, days: Optional[int] = None) -> List[UsageRecord]:
        """Recent usage records, newest first."""
        return self._require_ledger().list(limit, days)

    def purge_usage(self, days: int) -> int:
        """Delete usage records older than the given number of days."""
        return self._require_ledger().purge_older_than(days)

    def estimate_cost(self, text: str, model: Optional[str] = None) -> float:
        """Estimated pay-per-use cost of speaking text."""
        return estimate_cost(model or self.profile.default_model, count_characters(text))

    def get_account_info(self) -> AccountInfo:
        """Current account status, cached in the ledger.

        Profiles with a subscription endpoint are queried; pay-per-use
        profiles report local usage from the ledger with no limit. When
        the provider is unreachable a cached snapshot is returned if one
        exists.
        """
        try:
            info = self.client.fetch_account_info()
        except NetworkError as error:
            cached = self.ledger.get_cached_account_info() if self.ledger else None
            if cached is None:
                raise
            logger.warning("Using cached account info: {error}", error=error)
            return cached

        if info is None:
            info = self._pay_per_use_account_info()

        if self.ledger is not None:
            self.ledger.cache_account_info(info)
        return info

    def _pay_per_use_account_info(self) -> AccountInfo:
        used = 0
        if self.ledger is not None:
            used = self.ledger.stats(ACCOUNT_USAGE_WINDOW_DAYS).total_characters
        now = datetime.now()
        return AccountInfo(
            subscription_tier="Pay-per-use",
            character_limit=-1,
            character_used=used,
            characters_remaining=-1,
            reset_date=now,
            last_updated=now,
        )

    def close(self) -> None:
        self.client.close()


def build_pipeline(
    settings: AppSettings,
    api_key: Optional[str] = None,
    with_ledger: bool = True
) -> SpeechPipeline:
    """Wire a pipeline from settings.

    Args:
        settings: Application settings
        api_key: API key override (defaults to the profile's env var)
        with_ledger: Whether to attach the usage ledger

    Returns:
        Ready-to-use SpeechPipeline

    Raises:
        AuthenticationError: If no API key is available
        StorageError: If the ledger cannot be opened
    """
    profile = settings.profile
    client = SpeechClient(
        profile,
        api_key or settings.api_key(),
        retry_policy=settings.retry,
    )
    ledger = UsageLedger(settings.database_path, profile.default_voice) if with_ledger else None
    assembler = AudioAssembler(FFmpegConcatenator(binary=settings.ffmpeg))
    return SpeechPipeline(
        profile,
        client,
        assembler,
        ledger=ledger,
        pacing_delay=settings.pacing_delay,
    )
