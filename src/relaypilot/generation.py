"""Summary: Generation engine abstraction and implementations.

Importance: Gives the streaming pipeline and workflow transforms one model interface.
Alternatives: Call a specific inference runtime directly from the pipeline.
"""

from __future__ import annotations

import base64
import http.client
import json
import logging
import threading
import time
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from relaypilot.config import AppConfig


logger = logging.getLogger(__name__)

FragmentCallback = Callable[[str, bool], None]
ErrorCallback = Callable[[BaseException], None]


class GenerationSession(ABC):
    """Summary: One streaming generation turn.

    Importance: Callbacks may fire on any thread; the caller decides where state changes happen.
    Alternatives: Return a blocking iterator of fragments.
    """

    @abstractmethod
    def add_query_chunk(self, text: str) -> None:
        """Summary: Append prompt text to the session."""

    @abstractmethod
    def add_image(self, data: bytes) -> None:
        """Summary: Attach an image to the prompt."""

    @abstractmethod
    def generate_async(self, callback: FragmentCallback, on_error: ErrorCallback) -> None:
        """Summary: Start generation and return immediately.

        Importance: `callback(fragment, done)` runs once per fragment, with `done=True` last;
        `on_error` runs instead of the final callback when generation fails.
        Alternatives: Expose an asyncio stream directly.
        """

    @abstractmethod
    def close(self) -> None:
        """Summary: Release the session and stop any running generation."""


class GenerationEngine(ABC):
    """Summary: Factory for sessions plus a blocking one-shot generation call.

    Importance: Workflow transforms need whole responses; chat turns need streams.
    Alternatives: Implement one-shot generation on top of sessions only.
    """

    name: str = "engine"

    @abstractmethod
    def create_session(self) -> GenerationSession:
        """Summary: Open a new streaming session."""

    @abstractmethod
    def generate_text(self, prompt: str, purpose: str) -> tuple[str, int]:
        """Summary: Generate a full response and return it with latency in milliseconds."""


class MockGenerationSession(GenerationSession):
    """Summary: Streams a canned echo response word by word from a worker thread.

    Importance: Enables offline chat turns and repeatable tests.
    Alternatives: Load fixture responses from files.
    """

    def __init__(self, delay_s: float = 0.02) -> None:
        self._delay_s = delay_s
        self._prompt_parts: list[str] = []
        self._has_image = False
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def add_query_chunk(self, text: str) -> None:
        self._prompt_parts.append(text)

    def add_image(self, data: bytes) -> None:
        self._has_image = True

    def generate_async(self, callback: FragmentCallback, on_error: ErrorCallback) -> None:
        prompt = "".join(self._prompt_parts)
        suffix = " (image received)" if self._has_image else ""
        words = f"[mock:chat] {prompt[:240]}{suffix}".split(" ")
        fragments = [word if index == 0 else f" {word}" for index, word in enumerate(words)]

        def _produce() -> None:
            for index, fragment in enumerate(fragments):
                if self._stop.is_set():
                    return
                callback(fragment, index == len(fragments) - 1)
                time.sleep(self._delay_s)

        self._thread = threading.Thread(target=_produce, name="mock-generation", daemon=True)
        self._thread.start()

    def close(self) -> None:
        self._stop.set()


class MockGenerationEngine(GenerationEngine):
    """Summary: Deterministic engine for local testing."""

    name = "mock"

    def __init__(self, delay_s: float = 0.02) -> None:
        self._delay_s = delay_s

    def create_session(self) -> GenerationSession:
        return MockGenerationSession(delay_s=self._delay_s)

    def generate_text(self, prompt: str, purpose: str) -> tuple[str, int]:
        started = time.time()
        response = f"[mock:{purpose}] {prompt[:240]}"
        latency_ms = int((time.time() - started) * 1000)
        return response, latency_ms


class OllamaGenerationSession(GenerationSession):
    """Summary: Streams NDJSON fragments from a local Ollama server.

    Importance: Supports private, on-device style generation with image prompts.
    Alternatives: Use llama.cpp bindings in-process.
    """

    def __init__(self, base_url: str, model: str, timeout_s: float) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout_s = timeout_s
        self._prompt_parts: list[str] = []
        self._images: list[str] = []
        self._stop = threading.Event()

    def add_query_chunk(self, text: str) -> None:
        self._prompt_parts.append(text)

    def add_image(self, data: bytes) -> None:
        self._images.append(base64.b64encode(data).decode("ascii"))

    def generate_async(self, callback: FragmentCallback, on_error: ErrorCallback) -> None:
        body: dict[str, object] = {
            "model": self._model,
            "prompt": "".join(self._prompt_parts),
            "stream": True,
        }
        if self._images:
            body["images"] = list(self._images)
        request = urllib.request.Request(
            url=f"{self._base_url}/api/generate",
            data=json.dumps(body).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        def _produce() -> None:
            try:
                with urllib.request.urlopen(request, timeout=self._timeout_s) as response:
                    for raw_line in response:
                        if self._stop.is_set():
                            return
                        line = raw_line.decode("utf-8").strip()
                        if not line:
                            continue
                        chunk = json.loads(line)
                        if chunk.get("error"):
                            raise RuntimeError(f"Ollama error: {chunk['error']}")
                        done = bool(chunk.get("done"))
                        callback(chunk.get("response", ""), done)
                        if done:
                            return
                raise RuntimeError("Ollama stream ended before completion")
            except Exception as exc:
                if not self._stop.is_set():
                    on_error(exc)

        threading.Thread(target=_produce, name="ollama-generation", daemon=True).start()

    def close(self) -> None:
        self._stop.set()


class OllamaGenerationEngine(GenerationEngine):
    """Summary: Engine that targets a local Ollama server."""

    name = "ollama"

    def __init__(self, base_url: str, model: str, timeout_s: float = 60.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout_s = timeout_s

    def create_session(self) -> GenerationSession:
        return OllamaGenerationSession(self._base_url, self._model, self._timeout_s)

    def generate_text(self, prompt: str, purpose: str) -> tuple[str, int]:
        """Summary: Generate text with a single non-streaming request.

        Importance: Used to summarize forwarded messages in saved workflows.
        Alternatives: Collect a streaming session into a string.
        """

        payload = json.dumps({"model": self._model, "prompt": prompt, "stream": False})
        request = urllib.request.Request(
            url=f"{self._base_url}/api/generate",
            data=payload.encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        started = time.time()
        try:
            with urllib.request.urlopen(request, timeout=self._timeout_s) as response:
                raw = json.loads(response.read().decode("utf-8"))
        except (OSError, http.client.HTTPException, ValueError) as exc:
            raise RuntimeError(f"Ollama request failed: {exc}") from exc
        latency_ms = int((time.time() - started) * 1000)
        logger.info("Ollama %s generated text for %s in %s ms.", self._model, purpose, latency_ms)
        return raw.get("response", ""), latency_ms


@dataclass(frozen=True)
class GenerationEngineFactory:
    """Summary: Selects the generation engine from configuration.

    Importance: Keeps engine selection logic centralized.
    Alternatives: Wire engines manually at each entrypoint.
    """

    config: AppConfig

    def build(self) -> GenerationEngine:
        if self.config.ai_provider == "ollama":
            return OllamaGenerationEngine(
                self.config.ollama_url,
                self.config.ollama_model,
                timeout_s=self.config.generation_timeout_s,
            )
        return MockGenerationEngine()
