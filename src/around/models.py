"""Domain models for the around message board."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import MalformedInput


def _coerce_coordinate(value: object, name: str, limit: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedInput(f"{name} must be a number (got {value!r})")
    try:
        number = float(value)
    except OverflowError as exc:
        raise MalformedInput(f"{name} is out of range (got {value!r})") from exc
    if not math.isfinite(number) or not -limit <= number <= limit:
        raise MalformedInput(f"{name} must be between {-limit:g} and {limit:g}")
    return number


def _require_str(payload: dict, key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise MalformedInput(f"{key} must be a string")
    return value


@dataclass(slots=True, frozen=True)
class Location:
    lat: float
    lon: float

    @classmethod
    def from_values(cls, lat: object, lon: object) -> "Location":
        return cls(
            lat=_coerce_coordinate(lat, "lat", 90.0),
            lon=_coerce_coordinate(lon, "lon", 180.0),
        )

    @classmethod
    def from_dict(cls, payload: object) -> "Location":
        if not isinstance(payload, dict):
            raise MalformedInput("location must be an object with lat and lon")
        return cls.from_values(payload.get("lat"), payload.get("lon"))

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lon": self.lon}


@dataclass(slots=True, frozen=True)
class Post:
    user: str
    message: str
    location: Location

    @classmethod
    def from_dict(cls, payload: object) -> "Post":
        """Decode a post from a request body or a stored document.

        Unknown keys are ignored; missing or mistyped fields raise
        ``MalformedInput``.
        """

        if not isinstance(payload, dict):
            raise MalformedInput("post must be a JSON object")
        return cls(
            user=_require_str(payload, "user"),
            message=_require_str(payload, "message"),
            location=Location.from_dict(payload.get("location")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user": self.user,
            "message": self.message,
            "location": self.location.to_dict(),
        }


@dataclass(slots=True, frozen=True)
class IngestResult:
    stored_id: Optional[str]
    accepted: bool


@dataclass(slots=True, frozen=True)
class SearchRequest:
    center: Location
    radius_km: float

    def distance(self) -> str:
        return f"{self.radius_km}km"


@dataclass(slots=True)
class SearchResult:
    posts: list[Post] = field(default_factory=list)
    total_hits: int = 0
    took_ms: int = 0
    skipped: int = 0
    hidden: int = 0

    def to_list(self) -> list[dict[str, Any]]:
        return [post.to_dict() for post in self.posts]
