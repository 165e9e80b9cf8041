"""
Audio Delivery Pipeline

Tees a synthesized audio stream into two consumers at once:
- the durable sink (last reply recording, used by "Replay")
- the guild's voice client player (FFmpeg reading from an in-memory pipe)

Key Design Principles:
- Bounded memory: each consumer has a bounded buffer, the producer waits for
  the slower one (backpressure instead of buffering the whole reply)
- Playback is the success signal: the delivery resolves when the player goes
  idle and fails with PlaybackError when the player reports an error
- The durable copy is best-effort: a write failure is logged, the remaining
  chunks keep flowing to the player, and the previous recording is kept
- discord.py's `after=` callback becomes one awaitable completion future
"""

import asyncio
import io
import os
import queue
from typing import Any, AsyncIterator, Callable, Optional

import discord

from src.config.logging_config import get_logger
from src.types.errors import NotFound, PlaybackError

logger = get_logger(__name__)

# Chunks buffered per consumer (8 KiB chunks → ~128 KiB each)
MAX_BUFFERED_CHUNKS = 16

# Poll interval while waiting for another clip to finish
IDLE_POLL_INTERVAL_S = 0.1

_FEED_PUT_TIMEOUT_S = 0.1


class PlayerFeed(io.RawIOBase):
    """
    Blocking file-like object read by the player's pipe-writer thread.

    The event loop pushes chunks with feed()/finish() (from a worker thread,
    since they block when the buffer is full); the player thread pulls them
    with read(). abort() releases both sides.
    """

    def __init__(self, max_chunks: int = MAX_BUFFERED_CHUNKS):
        super().__init__()
        self._queue: "queue.Queue[Optional[bytes]]" = queue.Queue(maxsize=max_chunks)
        self._pending = b""
        self._eof = False
        self._aborted = False

    def readable(self) -> bool:
        return True

    def feed(self, chunk: bytes) -> bool:
        """Blocking put; returns False if the feed was aborted meanwhile."""
        return self._put(chunk)

    def finish(self) -> bool:
        """Signal end of stream to the reader."""
        return self._put(None)

    def abort(self) -> None:
        """Stop accepting data and wake a blocked reader with EOF."""
        self._aborted = True
        try:
            while True:
                self._queue.get_nowait()
        except queue.Empty:
            pass
        try:
            self._queue.put_nowait(None)
        except queue.Full:
            pass

    @property
    def aborted(self) -> bool:
        return self._aborted

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            parts = []
            while True:
                part = self.read(MAX_BUFFERED_CHUNKS * 8192)
                if not part:
                    return b"".join(parts)
                parts.append(part)

        while not self._pending and not self._eof:
            item = self._queue.get()
            if item is None:
                self._eof = True
            else:
                self._pending = item

        data, self._pending = self._pending[:size], self._pending[size:]
        return data

    def _put(self, item: Optional[bytes]) -> bool:
        while not self._aborted:
            try:
                self._queue.put(item, timeout=_FEED_PUT_TIMEOUT_S)
                return True
            except queue.Full:
                continue
        return False


class FileSink:
    """
    Durable copy of the latest reply.

    Writes go to `<path>.part`; commit() atomically replaces `path`, discard()
    drops the partial file so the previous recording stays replayable.
    """

    def __init__(self, path: str):
        self.path = path
        self._tmp_path = f"{path}.part"
        self._file: Optional[io.BufferedWriter] = None
        self.bytes_written = 0

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    async def write(self, chunk: bytes) -> None:
        if self._file is None:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            self._file = open(self._tmp_path, "wb")
        self._file.write(chunk)
        self.bytes_written += len(chunk)

    async def commit(self) -> None:
        """Raises OSError if the partial file cannot be flushed or moved."""
        self._close()
        if os.path.exists(self._tmp_path):
            os.replace(self._tmp_path, self.path)
            logger.info(f"🥝 File saved successfully ({self.bytes_written:,} bytes).")

    async def discard(self) -> None:
        """Drop the partial file; never raises OSError."""
        try:
            self._close()
        except OSError as e:
            logger.warning(f"⚠️ Error closing partial recording: {e}")
        try:
            os.remove(self._tmp_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"⚠️ Could not remove partial recording {self._tmp_path}: {e}")

    def _close(self) -> None:
        if self._file is not None:
            f, self._file = self._file, None
            f.close()


class AudioDeliveryPipeline:
    """
    Plays audio in a guild voice channel.

    Usage:
        pipeline = AudioDeliveryPipeline()

        async with tts.synthesize(text, voice) as audio:
            await pipeline.deliver(audio, FileSink(path), voice_client)

        await pipeline.replay(FileSink(path), voice_client)
    """

    def __init__(
        self,
        source_factory: Callable[..., Any] = discord.FFmpegOpusAudio,
        max_buffered_chunks: int = MAX_BUFFERED_CHUNKS,
    ):
        """
        Args:
            source_factory: Builds the player source, called as
                `factory(file_like, pipe=True)` for streams and
                `factory(path)` for files (default: discord.FFmpegOpusAudio)
            max_buffered_chunks: Buffer size of each tee consumer
        """
        self.source_factory = source_factory
        self.max_buffered_chunks = max_buffered_chunks

    async def deliver(self, audio: AsyncIterator[bytes], sink: FileSink, voice_client: Any) -> None:
        """
        Stream `audio` to the voice client while copying it into `sink`.

        Raises:
            PlaybackError: No usable voice connection, or the player failed
            SynthesisError: Propagated unchanged if the audio stream breaks
        """
        self._ensure_connected(voice_client)
        await self._wait_until_idle(voice_client)

        feed = PlayerFeed(self.max_buffered_chunks)
        sink_queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_buffered_chunks)
        writer = asyncio.create_task(self._write_sink(sink_queue, sink))
        playback: Optional[asyncio.Future] = None
        sink_closed = False
        total = 0

        try:
            playback = self._start_playback(
                voice_client, lambda: self.source_factory(feed, pipe=True), on_stop=feed.abort
            )
            logger.info("🗣️ Streaming reply to voice channel")

            async for chunk in audio:
                if feed.aborted:
                    break
                total += len(chunk)
                await sink_queue.put(chunk)
                await asyncio.to_thread(feed.feed, chunk)
            else:
                # Complete stream: let the writer drain and commit
                await sink_queue.put(None)
                sink_closed = True

            await asyncio.to_thread(feed.finish)

            await playback
            logger.info(f"🥝 Audio finished playing ({total:,} bytes).")

        finally:
            feed.abort()
            if playback is not None and not playback.done():
                voice_client.stop()
            if playback is not None and playback.done() and not playback.cancelled():
                # Mark the error retrieved when an earlier exception wins
                playback.exception()
            await self._finish_writer(writer, drain=sink_closed)

    async def replay(self, sink: FileSink, voice_client: Any) -> None:
        """
        Play the last durable recording.

        Raises:
            NotFound: No recording exists (the voice client is not touched)
            PlaybackError: No usable voice connection, or the player failed
        """
        if not sink.exists():
            raise NotFound("No previous reply recorded")
        await self.play_file(sink.path, voice_client)

    async def play_file(self, path: str, voice_client: Any) -> None:
        """
        Play an audio file (recording or greeting clip) to completion.

        Raises:
            NotFound: File does not exist
            PlaybackError: No usable voice connection, or the player failed
        """
        if not os.path.isfile(path):
            raise NotFound(f"Audio file does not exist: {path}")

        self._ensure_connected(voice_client)
        await self._wait_until_idle(voice_client)

        playback = self._start_playback(voice_client, lambda: self.source_factory(path))
        try:
            await playback
        finally:
            if not playback.done():
                voice_client.stop()
        logger.info(f"🥝 Audio finished playing: {os.path.basename(path)}")

    # Internal methods

    def _ensure_connected(self, voice_client: Any) -> None:
        if voice_client is None or not voice_client.is_connected():
            raise PlaybackError("Not connected to a voice channel")

    async def _wait_until_idle(self, voice_client: Any) -> None:
        while voice_client.is_playing() or voice_client.is_paused():
            await asyncio.sleep(IDLE_POLL_INTERVAL_S)

    def _start_playback(
        self,
        voice_client: Any,
        make_source: Callable[[], Any],
        on_stop: Optional[Callable[[], None]] = None,
    ) -> asyncio.Future:
        """
        Build the source, start the player and return a future resolved by
        its `after` callback. Source and player start-up failures raise
        PlaybackError.

        `on_stop` runs on the player thread as soon as playback ends, before
        the loop is notified, so a producer blocked on the feed is released.
        """
        loop = asyncio.get_running_loop()
        done = loop.create_future()

        def _resolve(error: Optional[Exception]) -> None:
            if done.done():
                return
            if error is not None:
                logger.error(f"⛑️ Error playing audio: {error}")
                done.set_exception(PlaybackError(f"Player error: {error}"))
            else:
                done.set_result(None)

        def _after(error: Optional[Exception]) -> None:
            # Runs on the player thread
            if on_stop is not None:
                on_stop()
            loop.call_soon_threadsafe(_resolve, error)

        try:
            voice_client.play(make_source(), after=_after)
        except (discord.ClientException, TypeError, OSError) as e:
            logger.error(f"⛑️ Could not start playback: {e}")
            raise PlaybackError(f"Could not start playback: {e}") from e

        return done

    async def _write_sink(self, sink_queue: asyncio.Queue, sink: FileSink) -> None:
        """Drain the sink queue into the durable copy; write errors are non-fatal."""
        failed = False
        try:
            while True:
                chunk = await sink_queue.get()
                if chunk is None:
                    break
                if failed:
                    continue
                try:
                    await sink.write(chunk)
                except Exception as e:
                    failed = True
                    logger.warning(f"⚠️ Error writing to file, continuing without a recording: {e}")
        except asyncio.CancelledError:
            await sink.discard()
            raise

        if failed:
            await sink.discard()
        else:
            try:
                await sink.commit()
            except OSError as e:
                logger.warning(f"⚠️ Could not save the recording: {e}")
                await sink.discard()

    async def _finish_writer(self, writer: asyncio.Task, drain: bool) -> None:
        if not drain and not writer.done():
            # The end-of-stream sentinel was never queued
            writer.cancel()
        try:
            await writer
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning(f"⚠️ Recording writer failed, continuing without a recording: {e}")
