"""Vision asker: answer a question about attached images.

The answer is returned as a ``VisionResult``; endpoint errors and timeouts
produce ``ok=False`` rather than an exception, so the chat flow can decide
whether to tell the user the images could not be processed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from citeline.config import VisionCfg
from citeline.errors import VisionFailed
from citeline.llm import acomplete, vision_messages
from citeline.models import VisionResult

logger = logging.getLogger(__name__)

COULD_NOT_PROCESS_IMAGES = "I couldn't analyze the attached images, so this answer doesn't use them."


@dataclass
class VisionOptions:
    """Per-call overrides; None falls back to the configured value."""

    model: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None


VisionEndpoint = Callable[[str, Sequence[str], str, int, float], Awaitable[str]]


async def litellm_vision_endpoint(
    question: str,
    image_urls: Sequence[str],
    model: str,
    max_tokens: int,
    temperature: float,
) -> str:
    """Default endpoint: a multimodal chat completion through litellm."""
    return await acomplete(
        model=model,
        messages=vision_messages(question, list(image_urls)),
        max_tokens=max_tokens,
        temperature=temperature,
    )


def format_vision_result(question: str, answer: str, image_urls: Sequence[str]) -> str:
    """Wrap an answer in the ``<vision_analysis>`` block inserted into the conversation."""
    image_list = "\n".join(f"[Image {i + 1}]: {url}" for i, url in enumerate(image_urls))
    return (
        "\n\n<vision_analysis>\n"
        f"<query>{question}</query>\n"
        "<images>\n"
        f"{image_list}\n"
        "</images>\n"
        "<analysis>\n"
        f"{answer}\n"
        "</analysis>\n"
        "</vision_analysis>"
    )


class VisionAsker:
    """Calls the image-reasoning endpoint and formats its answer.

    Args:
        config: Model defaults and the per-call timeout.
        endpoint: Coroutine performing the call; defaults to litellm.
    """

    def __init__(
        self,
        config: VisionCfg | None = None,
        endpoint: VisionEndpoint | None = None,
    ) -> None:
        self._config = config or VisionCfg()
        self._endpoint = endpoint or litellm_vision_endpoint

    async def ask_about_images(
        self,
        question: str,
        image_urls: Sequence[str],
        options: VisionOptions | None = None,
    ) -> VisionResult:
        """Ask *question* about *image_urls*.

        Callers must only invoke this with at least one image url.
        """
        if not image_urls:
            raise ValueError("ask_about_images requires at least one image url")

        opts = options or VisionOptions()
        model = opts.model or self._config.model
        urls = list(image_urls)

        try:
            answer = await self._call(question, urls, opts, model)
        except VisionFailed as exc:
            logger.warning("Vision request failed (%d image(s)): %s", len(urls), exc)
            return VisionResult(ok=False, error=str(exc), model=model, image_count=len(urls))

        logger.debug("Vision answer: %d chars for %d image(s)", len(answer), len(urls))
        return VisionResult(
            ok=True,
            answer_text=format_vision_result(question, answer, urls) if answer else "",
            model=model,
            image_count=len(urls),
        )

    async def _call(
        self, question: str, urls: list[str], opts: VisionOptions, model: str
    ) -> str:
        max_tokens = opts.max_tokens or self._config.max_tokens
        temperature = (
            opts.temperature if opts.temperature is not None else self._config.temperature
        )
        try:
            answer = await asyncio.wait_for(
                self._endpoint(question, urls, model, max_tokens, temperature),
                timeout=self._config.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise VisionFailed(f"timed out after {self._config.timeout_seconds}s") from exc
        except Exception as exc:
            raise VisionFailed(repr(exc)) from exc
        return (answer or "").strip()
