"""Per-turn orchestration: context → (ensure | retrieve | vision) → model call.

Pipeline:
  1. Build the ``RetrievalContext`` from the owners' persisted index ids.
  2. Concurrently: create the thread's index on first use, augment the
     message from the resolved index, and ask the vision endpoint about any
     attached images.
  3. Send the model-facing message to the generation model.

Step 2 is enrichment only. Its failures degrade to an unaugmented message;
the single user-visible failure is a vision error on an image request.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from citeline.config import CitelineConfig
from citeline.index.chunking import TextChunker
from citeline.index.store import SqliteKnowledgeIndexStore
from citeline.llm import acomplete
from citeline.models import AugmentResult, KnowledgeIndex, RetrievalContext, Scope, VisionResult
from citeline.retrieval.injector import RetrievalInjector
from citeline.retrieval.lifecycle import IndexLifecycleManager
from citeline.retrieval.owners import SqliteOwnerStore
from citeline.retrieval.scope import ScopeResolver
from citeline.vision import COULD_NOT_PROCESS_IMAGES, VisionAsker

logger = logging.getLogger(__name__)


@dataclass
class TurnRequest:
    """One user message and the owners it belongs to."""

    message: str
    thread_id: str | None = None
    workspace_id: str | None = None
    project_id: str | None = None
    image_urls: list[str] = field(default_factory=list)
    history: list[dict] = field(default_factory=list)


@dataclass
class PreparedTurn:
    """Everything decided before the model call.

    Attributes:
        messages: Model-facing message list (history + augmented user message).
        context: Retrieval inputs the turn was resolved from.
        resolved: ``(scope, index_id)`` the turn was grounded against, or None.
        augment: Retrieval outcome.
        vision: Vision outcome, None when no images were attached.
        ensured: Index created or confirmed for the thread, if any.
        notice: Message to show the user alongside the answer.
    """

    messages: list[dict]
    context: RetrievalContext
    resolved: tuple[Scope, str] | None
    augment: AugmentResult
    vision: VisionResult | None = None
    ensured: KnowledgeIndex | None = None
    notice: str | None = None

    @property
    def model_message(self) -> str:
        return self.messages[-1]["content"]


@dataclass
class TurnResult:
    answer: str
    prepared: PreparedTurn


class TurnPipeline:
    """Wires the retrieval, vision and generation components for one turn."""

    def __init__(
        self,
        config: CitelineConfig,
        owners: SqliteOwnerStore,
        lifecycle: IndexLifecycleManager,
        injector: RetrievalInjector,
        vision: VisionAsker,
        resolver: ScopeResolver | None = None,
    ) -> None:
        self._config = config
        self._owners = owners
        self._lifecycle = lifecycle
        self._injector = injector
        self._vision = vision
        self._resolver = resolver or ScopeResolver()

    @classmethod
    def from_config(cls, config: CitelineConfig) -> TurnPipeline:
        """Build a pipeline over the SQLite database named in *config*."""
        idx = config.index
        store = SqliteKnowledgeIndexStore(
            idx.db_path,
            embedding_model=idx.embedding_model,
            dimensions=idx.dimensions,
            chunker=TextChunker(chunk_size=idx.chunk_size, overlap=idx.overlap),
        )
        owners = SqliteOwnerStore(idx.db_path)
        return cls(
            config,
            owners,
            IndexLifecycleManager(store, owners, timeout_seconds=config.retrieval.timeout_seconds),
            RetrievalInjector(store, config.retrieval),
            VisionAsker(config.vision),
        )

    async def prepare(self, request: TurnRequest) -> PreparedTurn:
        """Run context building, index ensure, retrieval and vision."""
        context = await self._build_context(request)
        resolved = self._resolver.resolve_with_scope(context)
        if resolved:
            logger.debug("Grounding turn against %s index %s", resolved[0].value, resolved[1])
        else:
            logger.debug("No knowledge index in scope for this turn")

        ensured, augment, vision = await asyncio.gather(
            self._ensure_thread_index(request, context),
            self._injector.augment(
                request.message,
                resolved[1] if resolved else None,
                context.query,
                fallback_index_ids=context.fallback_index_ids,
            ),
            self._ask_vision(request),
        )

        model_message = augment.message_for_model
        notice = None
        if vision is not None:
            if vision.ok:
                model_message += vision.answer_text
            else:
                notice = COULD_NOT_PROCESS_IMAGES

        messages = [*request.history, {"role": "user", "content": model_message}]
        return PreparedTurn(
            messages=messages,
            context=context,
            resolved=resolved,
            augment=augment,
            vision=vision,
            ensured=ensured,
            notice=notice,
        )

    async def run(self, request: TurnRequest) -> TurnResult:
        """Prepare the turn and call the generation model.

        Errors from the model call itself propagate.
        """
        prepared = await self.prepare(request)
        answer = await self.complete(prepared)
        return TurnResult(answer=answer, prepared=prepared)

    async def complete(self, prepared: PreparedTurn) -> str:
        """Send the prepared messages to the generation model."""
        gen = self._config.generation
        return await acomplete(
            model=gen.model,
            messages=prepared.messages,
            max_tokens=gen.max_tokens,
            temperature=gen.temperature,
        )

    async def _build_context(self, request: TurnRequest) -> RetrievalContext:
        """Read the owners' index ids; on failure the turn proceeds ungrounded."""
        retrieval = self._config.retrieval
        try:
            return await asyncio.wait_for(
                self._owners.build_context(
                    request.message,
                    thread_id=request.thread_id,
                    workspace_id=request.workspace_id,
                    project_id=request.project_id,
                    image_urls=request.image_urls,
                    fallback_window_minutes=retrieval.fallback_window_minutes,
                    fallback_limit=retrieval.fallback_limit,
                ),
                timeout=retrieval.timeout_seconds,
            )
        except Exception as exc:
            logger.warning("Could not read index ids for this turn, sending ungrounded: %r", exc)
            return RetrievalContext(query=request.message, image_urls=list(request.image_urls))

    async def _ensure_thread_index(
        self, request: TurnRequest, context: RetrievalContext
    ) -> KnowledgeIndex | None:
        if not request.thread_id or context.thread_index_id:
            return None
        return await self._lifecycle.ensure(Scope.THREAD, request.thread_id)

    async def _ask_vision(self, request: TurnRequest) -> VisionResult | None:
        if not request.image_urls:
            return None
        return await self._vision.ask_about_images(request.message, request.image_urls)
