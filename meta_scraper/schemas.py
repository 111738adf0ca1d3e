"""Shared data structures used across modules."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, List, Optional, Union

from pydantic import BaseModel


@dataclass(frozen=True, slots=True)
class MetaTag:
    name: str
    content: Optional[str]

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "content": self.content}


@dataclass(frozen=True, slots=True)
class ExtractionSuccess:
    """Meta tags extracted from one rendered page."""

    url: str
    meta_tags: tuple[MetaTag, ...] = field(default_factory=tuple)

    status: ClassVar[str] = "success"
    ok: ClassVar[bool] = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "status": self.status,
            "metaTags": [tag.to_dict() for tag in self.meta_tags],
        }


@dataclass(frozen=True, slots=True)
class ExtractionFailure:
    """A URL that could not be rendered or returned a non-success status.

    Failures never carry meta tags; ``metaTags`` is always serialised empty.
    """

    url: str
    error: str

    status: ClassVar[str] = "error"
    ok: ClassVar[bool] = False

    @property
    def meta_tags(self) -> tuple[MetaTag, ...]:
        return ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "status": self.status,
            "error": self.error,
            "metaTags": [],
        }


ExtractionResult = Union[ExtractionSuccess, ExtractionFailure]


def results_to_payload(results: List[ExtractionResult]) -> list[dict[str, Any]]:
    return [result.to_dict() for result in results]


class ScrapeRequest(BaseModel):
    """Body of ``POST /api/scrape``; entries are validated later, one by one."""

    urls: List[Any]
