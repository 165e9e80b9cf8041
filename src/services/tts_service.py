"""
TTSService

Purpose: Text-to-Speech adapter for the OpenAI speech endpoint
(POST /audio/speech). Audio is streamed back chunk by chunk so the delivery
pipeline can start playing before synthesis has finished.

Key Features:
- Streaming audio chunks via async iterator (no full buffering)
- HTTP client connection pooling
- Scoped response lifetime (`async with`), closed on every exit path
- Per-request metrics (time to first byte, bytes, duration)
"""

import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

import httpx

from src.config.logging_config import get_logger
from src.config.settings import get_settings
from src.types.errors import SynthesisError

logger = get_logger(__name__)

TTS_STREAM_CHUNK_SIZE = 8192
TTS_RESPONSE_FORMAT = "opus"


@dataclass
class TTSMetrics:
    """
    Metrics for a single synthesis.

    Attributes:
        voice_id: Voice used for synthesis
        text_length: Length of input text (characters)
        audio_bytes: Total audio bytes streamed
        time_to_first_byte_s: Time from request start to first audio byte
        total_duration_s: Time from request start to end of stream
        success: Whether the stream completed without error
        error: Error message if synthesis failed
    """
    voice_id: str
    text_length: int
    audio_bytes: int = 0
    time_to_first_byte_s: float = 0.0
    total_duration_s: float = 0.0
    success: bool = False
    error: Optional[str] = None


class TTSService:
    """
    OpenAI text-to-speech client.

    Usage:
        tts = TTSService()

        async with tts.synthesize("Hello world", "onyx") as audio:
            async for chunk in audio:
                ...

        await tts.close()
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout_s: Optional[float] = None,
        chunk_size: int = TTS_STREAM_CHUNK_SIZE,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize TTSService.

        Args:
            api_key: Override OPENAI_API_KEY
            base_url: Override OPENAI_BASE_URL
            model: Override TTS_MODEL
            timeout_s: Override OPENAI_TIMEOUT_S
            chunk_size: Bytes per streamed chunk
            client: Pre-built httpx client (tests inject a MockTransport)
        """
        settings = get_settings()

        self.api_key = api_key or settings.openai_api_key
        self.base_url = (base_url or settings.openai_base_url).rstrip('/')
        self.model = model or settings.tts_model
        self.timeout = timeout_s or settings.openai_timeout_s
        self.chunk_size = chunk_size

        self._client: Optional[httpx.AsyncClient] = client

        # Metrics history (last 100)
        self._metrics_history: List[TTSMetrics] = []
        self._max_metrics_history = 100

        logger.info(f"🔊 TTSService initialized (url={self.base_url}, model={self.model})")

    @asynccontextmanager
    async def synthesize(self, text: str, voice_id: str) -> AsyncIterator[AsyncIterator[bytes]]:
        """
        Open a speech stream for `text` spoken by `voice_id`.

        The request is sent on entry so that backend errors surface before any
        playback starts; the yielded async iterator produces audio chunks.

        Raises:
            SynthesisError: Request rejected, transport failure, or the stream
                broke while being consumed
        """
        client = await self._ensure_client()
        metrics = TTSMetrics(voice_id=voice_id, text_length=len(text))
        t_start = time.time()

        logger.info(f"🔊 TTS request: text=\"{text[:50]}...\", voice={voice_id}")

        payload = {
            "model": self.model,
            "voice": voice_id,
            "input": text,
            "response_format": TTS_RESPONSE_FORMAT,
        }
        request = client.build_request(
            "POST",
            f"{self.base_url}/audio/speech",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json=payload,
        )

        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            self._fail(metrics, t_start, e)
            raise SynthesisError(f"Speech request failed: {e}") from e

        try:
            if response.status_code >= 400:
                body = (await response.aread())[:200]
                error = SynthesisError(f"Speech HTTP error {response.status_code}: {body!r}")
                self._fail(metrics, t_start, error)
                raise error

            logger.info("🥝 TTS response received from OpenAI.")
            yield self._iter_audio(response, metrics, t_start)

        finally:
            await response.aclose()

    async def _iter_audio(self, response: httpx.Response, metrics: TTSMetrics, t_start: float) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes(self.chunk_size):
                if not chunk:
                    continue
                if metrics.audio_bytes == 0:
                    metrics.time_to_first_byte_s = time.time() - t_start
                metrics.audio_bytes += len(chunk)
                logger.trace(f"🔍 TTS chunk: {len(chunk)} bytes")
                yield chunk
        except httpx.HTTPError as e:
            self._fail(metrics, t_start, e)
            raise SynthesisError(f"Speech stream interrupted: {e}") from e

        metrics.success = True
        metrics.total_duration_s = time.time() - t_start
        self._record_metrics(metrics)
        logger.info(f"✅ TTS complete: bytes={metrics.audio_bytes}, ttfb={metrics.time_to_first_byte_s:.3f}s")

    def get_metrics(self) -> List[TTSMetrics]:
        return self._metrics_history.copy()

    async def close(self) -> None:
        """
        Close HTTP client and cleanup resources.
        """
        if self._client is not None:
            await self._client.aclose()
            self._client = None

        logger.info("🔊 TTSService closed")

    # Internal methods

    async def _ensure_client(self) -> httpx.AsyncClient:
        """
        Lazy initialization of HTTP client with connection pooling.

        Returns:
            Configured httpx.AsyncClient instance
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10)
            )
        return self._client

    def _fail(self, metrics: TTSMetrics, t_start: float, error: Exception) -> None:
        logger.error(f"⛑️ Error generating speech: {error}")
        metrics.error = str(error)
        metrics.total_duration_s = time.time() - t_start
        self._record_metrics(metrics)

    def _record_metrics(self, metrics: TTSMetrics) -> None:
        self._metrics_history.append(metrics)

        # Limit history size
        if len(self._metrics_history) > self._max_metrics_history:
            self._metrics_history = self._metrics_history[-self._max_metrics_history:]


# Singleton instance
_tts_service: Optional[TTSService] = None


def get_tts_service() -> TTSService:
    """
    Get singleton TTSService instance.

    Returns:
        Initialized TTSService instance
    """
    global _tts_service
    if _tts_service is None:
        _tts_service = TTSService()
    return _tts_service
