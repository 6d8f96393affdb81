"""
Text-Generation Delegate

The curriculum teacher may ask an external text generator for lesson
material instead of using its fixed topic table. Generation is slow and
can fail, so it never runs inside the tick:

- DelegateDispatcher submits the call to a worker thread and returns at once
- finished calls land in a thread-safe result queue
- the engine polls the queue once per tick, on its own thread
- calls that outlive the timeout are reported as failures and their late
  results discarded

Any callable generate(prompt) -> str can act as the generator.
HttpTextGenerator talks to an OpenAI-compatible chat-completions endpoint.
"""

import logging
import os
import queue
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import requests

from .errors import DelegateError

logger = logging.getLogger(__name__)


TextGenerator = Callable[[str], str]


class HttpTextGenerator:
    """
    Chat-completions client with retry/backoff on rate limiting.
    """

    def __init__(
        self,
        url: str = "https://api.openai.com/v1/chat/completions",
        model: str = "gpt-3.5-turbo",
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        max_attempts: int = 3,
        max_tokens: int = 200,
        system_prompt: str = (
            "You are a patient teacher. Explain the topic in a few very short, "
            "simple sentences, one fact per sentence."
        ),
    ):
        self.url = url
        self.model = model
        self.api_key = api_key if api_key is not None else os.environ.get("OPENAI_API_KEY")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.max_tokens = max_tokens
        self.system_prompt = system_prompt

    def __call__(self, prompt: str) -> str:
        if not self.api_key:
            raise DelegateError("No API key configured for the text generator")

        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": self.max_tokens,
        }

        last_error = "no attempt made"
        for attempt in range(self.max_attempts):
            try:
                r = requests.post(self.url, headers=headers, json=payload, timeout=self.timeout)
            except requests.RequestException as e:
                last_error = str(e)
                continue
            if r.status_code == 200:
                try:
                    return r.json()["choices"][0]["message"]["content"]
                except (ValueError, KeyError, IndexError, TypeError) as e:
                    raise DelegateError(f"Malformed generator response: {e}") from e
            if r.status_code == 429:
                last_error = "rate limited"
                time.sleep(2 ** attempt)  # Backoff
                continue
            raise DelegateError(f"Generator returned HTTP {r.status_code}")
        raise DelegateError(f"Generator unavailable: {last_error}")

    # The key is never written into full saves; a restored client reads the environment again
    def __getstate__(self):
        state = self.__dict__.copy()
        state["api_key"] = None
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        self.api_key = os.environ.get("OPENAI_API_KEY")


@dataclass
class DelegateResult:
    """Outcome of one delegated generation."""
    tag: str
    prompt: str
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.text is not None


class DelegateDispatcher:
    """
    Fire-and-forget, time-boxed execution of generator calls.
    """

    def __init__(self, generator: TextGenerator, timeout: float = 10.0, clock: Callable[[], float] = time.monotonic):
        self.generator = generator
        self.timeout = timeout
        self.clock = clock

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="bionet-delegate")
        self._results: "queue.Queue[DelegateResult]" = queue.Queue()
        self._outstanding: Dict[str, Tuple[float, str]] = {}  # tag -> (submit time, prompt)
        self._abandoned: set = set()
        self._counter = 0

    @property
    def outstanding(self) -> int:
        return len(self._outstanding)

    def submit(self, prompt: str) -> str:
        """
        Start a generation in the background.

        Returns:
            Tag identifying the result when it arrives
        """
        self._counter += 1
        tag = f"delegate-{self._counter}"
        self._outstanding[tag] = (self.clock(), prompt)
        future = self._executor.submit(self.generator, prompt)
        future.add_done_callback(lambda f, tag=tag: self._deliver(tag, prompt, f))
        return tag

    def _deliver(self, tag: str, prompt: str, future: Future) -> None:
        # Runs on the worker thread; only touches the thread-safe queue
        try:
            text = future.result()
        except Exception as e:
            self._results.put(DelegateResult(tag=tag, prompt=prompt, error=str(e) or type(e).__name__))
            return
        if not isinstance(text, str):
            self._results.put(DelegateResult(tag=tag, prompt=prompt, error="Generator returned no text"))
            return
        self._results.put(DelegateResult(tag=tag, prompt=prompt, text=text))

    def poll(self) -> List[DelegateResult]:
        """
        Collect finished and timed-out calls. Call from the tick thread.
        """
        results = []
        while True:
            try:
                result = self._results.get_nowait()
            except queue.Empty:
                break
            if result.tag in self._abandoned:
                self._abandoned.discard(result.tag)
                continue  # Already reported as timed out
            self._outstanding.pop(result.tag, None)
            results.append(result)

        now = self.clock()
        for tag, (started, prompt) in list(self._outstanding.items()):
            if now - started > self.timeout:
                del self._outstanding[tag]
                self._abandoned.add(tag)
                results.append(DelegateResult(tag=tag, prompt=prompt, error=f"timed out after {self.timeout:.1f}s"))
        return results

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)

    # Worker threads and queues are not picklable; a restored dispatcher starts empty
    def __getstate__(self):
        return {"generator": self.generator, "timeout": self.timeout, "clock": self.clock}

    def __setstate__(self, state):
        self.__init__(state["generator"], timeout=state["timeout"], clock=state["clock"])
