"""Retrieval injection: ground the model-facing copy of a user message.

Pipeline:
  1. No index → return the message unchanged (retrieval is purely additive).
  2. Cap the search query (an inline ``<files>`` block is cut off first).
  3. Query the resolved index; if it has no hits, query recent sibling
     indexes in order.
  4. Keep excerpts best-first until the character budget is spent.
  5. Append a ``<files>`` block to a copy of the message.

Any failure or timeout in step 3 is logged and the turn proceeds
unaugmented.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from citeline.config import RetrievalCfg
from citeline.errors import RetrievalFailed
from citeline.index.store import KnowledgeIndexStore
from citeline.models import AugmentResult, RetrievedExcerpt

logger = logging.getLogger(__name__)

_FILES_MARKER = "<files>"


def cap_query(query: str, max_chars: int) -> str:
    """Shorten an over-long search query.

    If the query carries an inline ``<files>`` block, only the text before it
    is kept; otherwise it is cut to *max_chars*.
    """
    if len(query) <= max_chars:
        return query
    marker = query.find(_FILES_MARKER)
    if marker > 0:
        query = query[:marker].strip()
    return query[:max_chars]


def apply_char_budget(
    excerpts: Sequence[RetrievedExcerpt], budget: int
) -> list[RetrievedExcerpt]:
    """Select excerpts, best score first, whose combined text fits *budget*.

    Selection stops at the first excerpt that would overflow. If even the
    best excerpt is too long it is trimmed to the budget.
    """
    ordered = sorted(excerpts, key=lambda e: e.score, reverse=True)
    selected: list[RetrievedExcerpt] = []
    total = 0
    for excerpt in ordered:
        if not excerpt.text:
            continue
        size = len(excerpt.text)
        if total + size > budget:
            if not selected:
                selected.append(
                    RetrievedExcerpt(
                        text=excerpt.text[:budget],
                        source_ref=excerpt.source_ref,
                        score=excerpt.score,
                    )
                )
            break
        selected.append(excerpt)
        total += size
    return selected


def format_excerpts(excerpts: Sequence[RetrievedExcerpt]) -> str:
    """Render excerpts as the ``<files>`` block appended to the model message."""
    if not excerpts:
        return ""
    parts = ["\n\n<files>\n"]
    for excerpt in excerpts:
        parts.append(
            f"<file_snippet file_name='{excerpt.source_ref}'>"
            f"<content>{excerpt.text}</content>"
            "</file_snippet>\n"
        )
    parts.append("</files>")
    return "".join(parts)


class RetrievalInjector:
    """Appends retrieved excerpts to the model-facing copy of a message.

    Args:
        store: Index store queried for excerpts.
        config: Result counts, character budgets and the per-call timeout.
    """

    def __init__(self, store: KnowledgeIndexStore, config: RetrievalCfg | None = None) -> None:
        self._store = store
        self._config = config or RetrievalCfg()

    async def augment(
        self,
        user_message: str,
        index_id: str | None,
        query: str,
        *,
        fallback_index_ids: Sequence[str] = (),
    ) -> AugmentResult:
        """Return the model-facing message and the excerpts injected into it.

        Never raises for retrieval problems: a None index, a failed or timed
        out query, or no hits all yield ``user_message`` unchanged.
        """
        if not index_id:
            return AugmentResult(message_for_model=user_message)

        search_query = cap_query(query or user_message, self._config.max_query_chars)
        if not search_query.strip():
            return AugmentResult(message_for_model=user_message)

        try:
            hits = await self._search(index_id, search_query, self._config.max_results)
        except RetrievalFailed as exc:
            logger.warning("Retrieval from %s failed, sending unaugmented: %s", index_id, exc)
            return AugmentResult(message_for_model=user_message)

        if not hits:
            hits = await self._search_fallbacks(index_id, search_query, fallback_index_ids)

        excerpts = apply_char_budget(hits, self._config.max_excerpt_chars)
        if not excerpts:
            logger.debug("No excerpts from %s", index_id)
            return AugmentResult(message_for_model=user_message)

        logger.info("Injecting %d excerpt(s) from %s", len(excerpts), index_id)
        return AugmentResult(
            message_for_model=user_message + format_excerpts(excerpts),
            excerpts_used=excerpts,
        )

    async def augment_messages(
        self,
        messages: Sequence[dict],
        index_id: str | None,
        *,
        fallback_index_ids: Sequence[str] = (),
    ) -> tuple[list[dict], AugmentResult | None]:
        """Augment the last user message of an OpenAI-style message list.

        Returns a new list (input list and dicts untouched) and the augment
        result, or None when the list has no user message.
        """
        out = list(messages)
        for i in range(len(out) - 1, -1, -1):
            if out[i].get("role") == "user":
                break
        else:
            return out, None

        content = out[i].get("content")
        text = content if isinstance(content, str) else str(content or "")
        result = await self.augment(text, index_id, text, fallback_index_ids=fallback_index_ids)
        if result.augmented:
            out[i] = {**out[i], "content": result.message_for_model}
        return out, result

    async def _search(
        self, index_id: str, query: str, max_results: int
    ) -> list[RetrievedExcerpt]:
        try:
            return await asyncio.wait_for(
                self._store.query(index_id, query, max_results),
                timeout=self._config.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise RetrievalFailed(
                f"query timed out after {self._config.timeout_seconds}s"
            ) from exc
        except Exception as exc:
            raise RetrievalFailed(repr(exc)) from exc

    async def _search_fallbacks(
        self, primary: str, query: str, fallback_index_ids: Sequence[str]
    ) -> list[RetrievedExcerpt]:
        hits: list[RetrievedExcerpt] = []
        candidates = [i for i in dict.fromkeys(fallback_index_ids) if i and i != primary]
        for index_id in candidates[: self._config.fallback_limit]:
            try:
                found = await self._search(index_id, query, self._config.fallback_max_results)
            except RetrievalFailed as exc:
                logger.warning("Fallback retrieval from %s failed: %s", index_id, exc)
                continue
            if found:
                logger.info("Found %d hit(s) in fallback index %s", len(found), index_id)
                hits.extend(found)
        return hits
