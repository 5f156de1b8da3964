"""Newline-delimited JSON framing over a child process's stdio streams."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

from loguru import logger

from expo_mcp.utils.exceptions import TransportError

from .protocol import RpcNotification, RpcRequest, WireMessage
from .serialization import decode_message, encode_message

MessageHandler = Callable[[WireMessage], None]

_DEFAULT_CHUNK_SIZE = 64 * 1024


class FrameDecoder:
    """
    Incremental decoder: feed raw chunks, get back complete messages.

    Bytes are buffered (not text) so a multi-byte character split between two
    chunks decodes correctly. A trailing line without a terminator stays buffered
    until the next chunk completes it.
    """

    def __init__(self, label: str = "peer"):
        self.label = label
        self._buffer = bytearray()

    @property
    def pending(self) -> bytes:
        """Undecoded bytes still waiting for a newline."""
        return bytes(self._buffer)

    def feed(self, chunk: bytes | str) -> list[WireMessage]:
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        self._buffer.extend(chunk)
        messages: list[WireMessage] = []
        while True:
            idx = self._buffer.find(b"\n")
            if idx < 0:
                break
            raw = bytes(self._buffer[:idx])
            del self._buffer[: idx + 1]
            message = self._decode_line(raw)
            if message is not None:
                messages.append(message)
        return messages

    def _decode_line(self, raw: bytes) -> WireMessage | None:
        text = raw.decode("utf-8", errors="replace").strip()
        if not text:
            return None
        try:
            payload: Any = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("[{}] dropped malformed frame ({}): {}", self.label, exc.msg, text[:200])
            return None
        try:
            return decode_message(payload)
        except ValueError as exc:
            logger.warning("[{}] dropped unrecognized frame ({}): {}", self.label, exc, text[:200])
            return None


class FramedTransport:
    """
    Owns one reader/writer pair of a peer process.

    The reader pump hands every decoded message to ``on_message``; handler errors are
    logged and never stop the pump. ``send`` serializes writes so frames reach the peer
    in the order they were issued.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        on_message: MessageHandler,
        *,
        label: str = "peer",
        chunk_size: int = _DEFAULT_CHUNK_SIZE,
    ):
        self._reader = reader
        self._writer = writer
        self._on_message = on_message
        self._decoder = FrameDecoder(label)
        self._write_lock = asyncio.Lock()
        self._chunk_size = chunk_size
        self._pump: asyncio.Task[None] | None = None
        self._closed = False
        self.label = label

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def reader_task(self) -> asyncio.Task[None] | None:
        return self._pump

    def start(self) -> asyncio.Task[None]:
        """Start the reader pump (idempotent)."""
        if self._pump is None:
            self._pump = asyncio.create_task(self._read_loop(), name=f"{self.label}-reader")
        return self._pump

    async def _read_loop(self) -> None:
        while True:
            try:
                chunk = await self._reader.read(self._chunk_size)
            except (ConnectionError, OSError) as exc:
                logger.warning("[{}] read failed: {}", self.label, exc)
                break
            if not chunk:
                break
            for message in self._decoder.feed(chunk):
                try:
                    self._on_message(message)
                except Exception:
                    logger.exception("[{}] message handler failed", self.label)
        if self._decoder.pending.strip():
            logger.warning("[{}] stream ended with a partial frame ({} bytes)", self.label, len(self._decoder.pending))
        logger.debug("[{}] output stream closed", self.label)

    async def send(self, message: RpcRequest | RpcNotification) -> None:
        """Frame and write one message; raises TransportError when the pipe is gone."""
        line = encode_message(message) + "\n"
        async with self._write_lock:
            if self._closed or self._writer.is_closing():
                raise TransportError(f"{self.label} input stream is closed")
            try:
                self._writer.write(line.encode("utf-8"))
                await self._writer.drain()
            except (ConnectionError, RuntimeError, OSError) as exc:
                raise TransportError(f"write to {self.label} failed: {exc}") from exc

    async def close(self) -> None:
        """Stop the pump and close the input stream."""
        if self._closed:
            return
        self._closed = True
        pump = self._pump
        if pump is not None and not pump.done() and pump is not asyncio.current_task():
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass
        try:
            self._writer.close()
        except (ConnectionError, RuntimeError, OSError):
            pass
