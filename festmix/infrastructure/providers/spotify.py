import asyncio
import logging
import math
import random
from typing import Any, Callable, Dict, List, Optional

import requests
import spotipy
from spotipy.exceptions import SpotifyException

from festmix.application.matching import ArtistMatcher
from festmix.application.selection import select_tracks
from festmix.crosscutting.config import DEFAULT_BATCH_BUDGETS, DEFAULT_MARKET
from festmix.domain.entities import (
    ArtistSearchResult,
    BatchBudget,
    Platform,
    PlatformUser,
    PlaylistResult,
    SelectionMode,
    Track,
)
from festmix.domain.errors import (
    CoverTooLarge,
    CredentialExpired,
    NotFound,
    PermanentFailure,
    RateLimited,
    TemporaryFailure,
)

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 5
ADD_TRACKS_CHUNK = 100
MAX_COVER_BYTES = 256000
DEFAULT_DESCRIPTION = "Generated from festival poster by Music Posters"


def _default_client_factory(credential: str) -> spotipy.Spotify:
    return spotipy.Spotify(auth=credential, requests_timeout=15)


def to_track_uri(track_id: str) -> str:
    if track_id.startswith('spotify:track:'):
        return track_id
    return f"spotify:track:{track_id}"


def map_spotify_error(error: Exception, operation: str) -> Exception:
    """Translate a spotipy/requests error into a domain error.

    Args:
        error: The exception raised by the client
        operation: Description of the operation being performed

    Returns:
        Domain exception to raise in its place
    """
    status = getattr(error, 'http_status', None)
    if status == 401:
        return CredentialExpired(f"Spotify credential rejected during {operation}")
    if status == 429:
        headers = getattr(error, 'headers', None) or {}
        try:
            retry_after_ms = int(float(headers.get('Retry-After', 1)) * 1000)
        except (TypeError, ValueError):
            retry_after_ms = 1000
        return RateLimited(retry_after_ms=retry_after_ms, message=f"Spotify rate limited during {operation}")
    if status == 404:
        return NotFound(f"Spotify resource not found during {operation}")
    if status is not None and status >= 500:
        return TemporaryFailure(f"Spotify error {status} during {operation}: {error}")
    if status is not None:
        return PermanentFailure(f"Spotify error {status} during {operation}: {error}")
    return TemporaryFailure(f"Spotify request failed during {operation}: {error}")


class SpotifyPlatformService:
    """Spotify implementation of the platform capability contract.

    A spotipy client is built per call from the caller's bearer credential,
    so one instance can serve many users. Blocking client calls run in a
    worker thread.
    """

    platform = Platform.SPOTIFY

    def __init__(self,
                 batch_budget: Optional[BatchBudget] = None,
                 market: str = DEFAULT_MARKET,
                 client_factory: Callable[[str], Any] = _default_client_factory,
                 rng: Optional[random.Random] = None):
        """Initialize Spotify platform service.

        Args:
            batch_budget: Batch size and delay for the resolver
            market: Market used for top tracks
            client_factory: Builds a spotipy client for a credential
            rng: Random source for track sampling
        """
        self.batch_budget = batch_budget or DEFAULT_BATCH_BUDGETS[Platform.SPOTIFY]
        self.market = market
        self._client_factory = client_factory
        self._rng = rng
        self._matcher = ArtistMatcher('Spotify')

    async def _call(self, credential: str, method: str, *args, **kwargs):
        client = self._client_factory(credential)
        return await asyncio.to_thread(getattr(client, method), *args, **kwargs)

    def _to_domain_track(self, item: Dict[str, Any], artist_id: str) -> Track:
        artists = item.get('artists') or []
        first_artist = artists[0] if artists else {}
        album = item.get('album') or {}
        images = album.get('images') or []

        return Track(
            name=item.get('name', ''),
            id=item['id'],
            external_uri=item.get('uri') or to_track_uri(item['id']),
            artist=first_artist.get('name') or 'Unknown Artist',
            artist_id=first_artist.get('id') or artist_id,
            album=album.get('name') or 'Unknown Album',
            album_artwork=images[0].get('url') if images else None,
            duration_ms=item.get('duration_ms', 0),
            preview_url=item.get('preview_url'),
            platform_url=(item.get('external_urls') or {}).get('spotify', ''),
            platform=Platform.SPOTIFY,
        )

    async def search_artist(self, name: str, credential: str) -> Optional[ArtistSearchResult]:
        """Search an artist by name.

        Returns:
            Best candidate among the first five results, or None
        """
        try:
            response = await self._call(credential, 'search', q=name, type='artist', limit=SEARCH_LIMIT)
        except Exception as e:
            logger.error(f"Spotify artist search failed for '{name}': {map_spotify_error(e, 'artist search')}")
            return None

        items = ((response or {}).get('artists') or {}).get('items') or []
        return self._matcher.match(name, ((a['id'], a.get('name', '')) for a in items if a.get('id')))

    async def get_top_tracks(self, artist_id: str, credential: str, quota: int,
                             selection_mode: Optional[SelectionMode] = None) -> List[Track]:
        """Get a sample of the artist's top tracks.

        Returns:
            Up to ``quota`` tracks, or [] on failure
        """
        try:
            response = await self._call(credential, 'artist_top_tracks', artist_id, country=self.market)
        except Exception as e:
            logger.error(f"Spotify top tracks failed for artist {artist_id}: {map_spotify_error(e, 'top tracks')}")
            return []

        items = [t for t in (response or {}).get('tracks') or [] if t and t.get('id')]
        if not items:
            return []

        selected = select_tracks(items, quota, selection_mode, self._rng)
        return [self._to_domain_track(item, artist_id) for item in selected]

    async def create_playlist(self, user_id: str, name: str, credential: str,
                              description: Optional[str] = None) -> PlaylistResult:
        """Create a private playlist."""
        try:
            result = await self._call(
                credential, 'user_playlist_create', user_id, name,
                public=False, description=description or DEFAULT_DESCRIPTION,
            )
        except (SpotifyException, requests.RequestException) as e:
            raise map_spotify_error(e, 'create playlist') from e

        logger.info(f"Created Spotify playlist {result['id']}: {name}")
        return PlaylistResult(
            id=result['id'],
            url=(result.get('external_urls') or {}).get('spotify', ''),
        )

    async def add_tracks(self, playlist_id: str, track_ids: List[str], credential: str) -> None:
        """Add tracks in sequential chunks of 100."""
        uris = [to_track_uri(t) for t in track_ids]
        for start in range(0, len(uris), ADD_TRACKS_CHUNK):
            chunk = uris[start:start + ADD_TRACKS_CHUNK]
            try:
                await self._call(credential, 'playlist_add_items', playlist_id, chunk)
            except (SpotifyException, requests.RequestException) as e:
                raise map_spotify_error(e, 'add tracks') from e
            logger.debug(f"Added {len(chunk)} tracks to Spotify playlist {playlist_id}")

    async def get_current_user(self, credential: str) -> PlatformUser:
        try:
            user = await self._call(credential, 'current_user')
        except (SpotifyException, requests.RequestException) as e:
            raise map_spotify_error(e, 'current user') from e

        return PlatformUser(
            id=user['id'],
            display_name=user.get('display_name') or user['id'],
            email=user.get('email'),
        )

    async def upload_cover(self, playlist_id: str, image_base64: str, credential: str) -> None:
        """Upload a base64 JPEG cover (at most 256 KB decoded)."""
        size_bytes = math.ceil(len(image_base64) * 3 / 4)
        if size_bytes > MAX_COVER_BYTES:
            raise CoverTooLarge(size_bytes, MAX_COVER_BYTES)

        try:
            await self._call(credential, 'playlist_upload_cover_image', playlist_id, image_base64)
        except (SpotifyException, requests.RequestException) as e:
            raise map_spotify_error(e, 'upload cover') from e
