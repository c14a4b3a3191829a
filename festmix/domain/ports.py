from __future__ import annotations

from typing import List, Optional, Protocol, runtime_checkable

from .entities import (
    ArtistSearchResult,
    BatchBudget,
    Platform,
    PlatformUser,
    PlaylistResult,
    SelectionMode,
    Track,
)


class MusicPlatformService(Protocol):
    """Port defining the capability contract of a streaming platform.

    Implementations share no base class. Search and top-track retrieval are
    fail-soft and must return ``None``/``[]`` instead of raising; playlist
    writes and the user lookup raise domain errors.
    """

    platform: Platform
    batch_budget: BatchBudget

    async def search_artist(self, name: str, credential: str) -> Optional[ArtistSearchResult]:
        """Return the best catalog candidate for ``name``, or None on no results or failure."""

    async def get_top_tracks(self, artist_id: str, credential: str, quota: int,
                             selection_mode: Optional[SelectionMode] = None) -> List[Track]:
        """Return up to ``quota`` sampled top tracks of the artist, or [] on failure."""

    async def create_playlist(self, user_id: str, name: str, credential: str,
                              description: Optional[str] = None) -> PlaylistResult:
        """Create a private playlist owned by ``user_id``."""

    async def add_tracks(self, playlist_id: str, track_ids: List[str], credential: str) -> None:
        """Append tracks, chunked to the platform's maximum write size."""

    async def get_current_user(self, credential: str) -> PlatformUser:
        """Return the user the credential belongs to."""


@runtime_checkable
class CoverUploader(Protocol):
    """Optional capability: platforms that accept a custom playlist cover."""

    async def upload_cover(self, playlist_id: str, image_base64: str, credential: str) -> None:
        """Upload a base64-encoded JPEG as the playlist cover."""


@runtime_checkable
class RequiresServiceCredential(Protocol):
    """Platforms that need a second, service-level credential before use."""

    def set_service_credential(self, token: str) -> None:
        """Inject the service credential into this service instance."""
