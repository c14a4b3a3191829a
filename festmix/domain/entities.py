from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


SIMILARITY_THRESHOLD = 0.6


class Platform(str, Enum):
    """Streaming platforms a lineup can be resolved against."""

    SPOTIFY = "spotify"
    APPLE_MUSIC = "apple-music"


class Tier(str, Enum):
    """Visual-prominence bucket of an artist on a poster."""

    HEADLINER = "headliner"
    SUB_HEADLINER = "sub-headliner"
    MID_TIER = "mid-tier"
    UNDERCARD = "undercard"


class TrackCountMode(str, Enum):
    TIER_BASED = "tier-based"
    CUSTOM = "custom"
    CUSTOM_PER_TIER = "custom-per-tier"
    PER_ARTIST = "per-artist"


class SelectionMode(str, Enum):
    POPULAR = "popular"
    BALANCED = "balanced"
    DEEP_CUTS = "deep-cuts"


@dataclass(frozen=True)
class Artist:
    """Artist as read from a lineup. Only the name is required."""

    name: str
    tier: Optional[Tier] = None
    weight: Optional[float] = None


@dataclass(frozen=True)
class ArtistSearchResult:
    """Best catalog candidate for a requested artist name."""

    id: str
    name: str
    similarity: float

    @property
    def matched(self) -> bool:
        return self.similarity >= SIMILARITY_THRESHOLD


@dataclass(frozen=True)
class ArtistMatchDiagnostic:
    """Outcome of searching one requested artist, kept for observability."""

    requested: str
    found: Optional[str]
    similarity: float
    matched: bool

    @classmethod
    def from_search(cls, requested: str, result: Optional[ArtistSearchResult]) -> "ArtistMatchDiagnostic":
        if result is None:
            return cls(requested=requested, found=None, similarity=0.0, matched=False)
        return cls(
            requested=requested,
            found=result.name,
            similarity=result.similarity,
            matched=result.matched,
        )


@dataclass(frozen=True)
class Track:
    """Playable track fetched from a platform catalog."""

    name: str
    id: str
    artist: str
    artist_id: str
    album: str
    platform_url: str
    platform: Platform
    duration_ms: int = 0
    album_artwork: Optional[str] = None
    preview_url: Optional[str] = None
    external_uri: Optional[str] = None


@dataclass(frozen=True)
class TrackCountOptions:
    """Caller-supplied quota configuration for one resolution."""

    mode: TrackCountMode = TrackCountMode.TIER_BASED
    custom_count: Optional[int] = None
    tier_counts: Optional[Dict[Tier, int]] = None
    per_artist_counts: Optional[Dict[str, int]] = None
    selection_mode: Optional[SelectionMode] = None

    def __post_init__(self):
        if self.tier_counts is None:
            object.__setattr__(self, 'tier_counts', {})
        if self.per_artist_counts is None:
            object.__setattr__(self, 'per_artist_counts', {})


@dataclass(frozen=True)
class BatchBudget:
    """Outbound request budget of a platform: group size and pause between groups."""

    batch_size: int
    delay_ms: int


@dataclass(frozen=True)
class PlaylistResult:
    id: str
    url: str


@dataclass(frozen=True)
class PlatformUser:
    id: str
    display_name: str
    email: Optional[str] = None


@dataclass(frozen=True)
class ResolutionResult:
    """Sole output of a track resolution."""

    tracks: List[Track]
    found_artists: int
    artist_matches: List[ArtistMatchDiagnostic]
    # Tracks fetched per lineup position, 0 where the artist was not accepted
    tracks_per_artist: List[int] = field(default_factory=list)

    @property
    def tracks_found(self) -> int:
        return len(self.tracks)
