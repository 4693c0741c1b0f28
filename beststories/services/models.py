"""
Feed item and ranked story models.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

STORY_TYPE = "story"


class FeedItem(BaseModel):
    """Item record as returned by the upstream feed. Every field may be missing."""

    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    title: str | None = None
    url: str | None = None
    by: str | None = None
    time: int | None = None  # epoch seconds
    score: int | None = None
    descendants: int | None = None
    type: str | None = None

    @property
    def is_story(self) -> bool:
        return self.type == STORY_TYPE


class RankedStory(BaseModel):
    """A story as handed to callers, serialized with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: int = 0
    title: str = ""
    uri: str = ""
    posted_by: str = ""
    time: datetime = Field(
        default_factory=lambda: datetime.fromtimestamp(0, tz=timezone.utc)
    )
    score: int = 0
    comment_count: int = 0

    @classmethod
    def from_item(cls, item: FeedItem, item_id: int | None = None) -> "RankedStory":
        """Build a story from a feed item, filling in defaults for missing fields."""
        return cls(
            id=item.id if item.id is not None else (item_id or 0),
            title=item.title or "",
            uri=item.url or "",
            posted_by=item.by or "",
            time=datetime.fromtimestamp(item.time or 0, tz=timezone.utc),
            score=item.score or 0,
            comment_count=item.descendants or 0,
        )
