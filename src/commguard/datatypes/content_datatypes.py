"""
Content items handed to the moderation core by the ingestion collaborator.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ContentType(Enum):
    """Kinds of content the core can moderate."""

    MESSAGE = "message"
    POST = "post"
    COMMENT = "comment"
    USER = "user"

    def __str__(self) -> str:
        return self.value

    @property
    def counts_as_message(self) -> bool:
        """True for content that contributes to a community's message volume."""
        return self is not ContentType.USER


@dataclass(frozen=True, slots=True)
class ContentTarget:
    """Key of a moderated object in the external content store."""

    target_type: str
    target_id: str

    def __str__(self) -> str:
        return f"{self.target_type}:{self.target_id}"


@dataclass(frozen=True, slots=True)
class ContentItem:
    """An ingested piece of community content. Immutable once created.

    Attributes:
        id: Identifier of the content in its source community.
        organization_id: Organization that owns the community and its rules.
        community_id: Community the content was posted in.
        author_id: Platform identifier of the author.
        text: Body of the content. Empty for ``USER`` items without a bio.
        type: Kind of content.
        author_name: Optional display name carried into the queue for moderators.
    """

    id: str
    organization_id: str
    community_id: str
    author_id: str
    text: str
    type: ContentType = ContentType.MESSAGE
    author_name: str | None = None

    @property
    def target(self) -> ContentTarget:
        return ContentTarget(target_type=self.type.value, target_id=self.id)
