"""Domain types shared by the retrieval, vision and citation components."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Scope(str, Enum):
    """Ownership tier of a knowledge index, in resolution precedence order."""

    WORKSPACE = "workspace"
    THREAD = "thread"
    PROJECT = "project"

    @property
    def label(self) -> str:
        """Capitalised name used in index labels, e.g. ``Thread``."""
        return self.value.capitalize()

    @classmethod
    def parse(cls, value: str | Scope) -> Scope:
        if isinstance(value, Scope):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            choices = ", ".join(s.value for s in cls)
            raise ValueError(f"Unknown scope '{value}'. Use one of: {choices}") from None


@dataclass(frozen=True)
class KnowledgeIndex:
    """A knowledge index bound to exactly one owner.

    Attributes:
        id: Opaque identifier issued by the index store.
        scope: Ownership tier of the owner record.
        owner_id: Primary id of the owning workspace, thread or project.
        created_at: Creation time when this process created the index;
            None when the id was read back from the owner record.
    """

    id: str
    scope: Scope
    owner_id: str
    created_at: datetime | None = None


@dataclass
class RetrievalContext:
    """Per-message retrieval inputs. The three index ids are independent."""

    query: str
    workspace_index_id: str | None = None
    thread_index_id: str | None = None
    project_index_id: str | None = None
    image_urls: list[str] = field(default_factory=list)
    fallback_index_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RetrievedExcerpt:
    """A ranked snippet returned by a knowledge index query."""

    text: str
    source_ref: str
    score: float


@dataclass(frozen=True)
class AugmentResult:
    """Outcome of ``RetrievalInjector.augment``.

    ``message_for_model`` is the model-facing copy; the caller's message is
    never touched.
    """

    message_for_model: str
    excerpts_used: list[RetrievedExcerpt] = field(default_factory=list)

    @property
    def augmented(self) -> bool:
        return bool(self.excerpts_used)


@dataclass(frozen=True)
class VisionResult:
    """Outcome of ``VisionAsker.ask_about_images``.

    ``ok=False`` marks a failed call; ``ok=True`` with empty ``answer_text``
    is a successful but empty answer.
    """

    ok: bool
    answer_text: str = ""
    error: str | None = None
    model: str | None = None
    image_count: int = 0


@dataclass(frozen=True)
class Source:
    """Canonical citation record shown to the end user."""

    url: str
    title: str
    domain: str
    description: str | None = None
    favicon: str | None = None
    published_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "title": self.title,
            "domain": self.domain,
            "description": self.description,
            "favicon": self.favicon,
            "published_at": self.published_at.isoformat() if self.published_at else None,
        }
