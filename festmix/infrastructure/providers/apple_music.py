import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional

import requests

from festmix.application.matching import ArtistMatcher
from festmix.application.selection import select_tracks
from festmix.crosscutting.config import DEFAULT_BATCH_BUDGETS, DEFAULT_STOREFRONT
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
    CredentialExpired,
    NotFound,
    PermanentFailure,
    RateLimited,
    ServiceCredentialMissing,
    TemporaryFailure,
)

logger = logging.getLogger(__name__)

API_BASE_URL = 'https://api.music.apple.com/v1'
SEARCH_LIMIT = 5
TOP_SONGS_LIMIT = 10
ADD_TRACKS_CHUNK = 100
ADD_TRACKS_DELAY_MS = 500
ARTWORK_SIZE = '300'
REQUEST_TIMEOUT = 15
DEFAULT_DESCRIPTION = "Generated from festival poster by Music Posters"

PLACEHOLDER_USER_ID = 'apple-music-user'
PLACEHOLDER_DISPLAY_NAME = 'Apple Music User'


def map_http_error(response: requests.Response, operation: str) -> Exception:
    """Translate an unsuccessful Apple Music response into a domain error."""
    status = response.status_code
    if status == 401:
        return CredentialExpired(f"Apple Music credential rejected during {operation}")
    if status == 429:
        try:
            retry_after_ms = int(float(response.headers.get('Retry-After', 1)) * 1000)
        except (TypeError, ValueError):
            retry_after_ms = 1000
        return RateLimited(retry_after_ms=retry_after_ms, message=f"Apple Music rate limited during {operation}")
    if status == 404:
        return NotFound(f"Apple Music resource not found during {operation}")
    if status >= 500:
        return TemporaryFailure(f"Apple Music error {status} during {operation}")
    return PermanentFailure(f"Apple Music error {status} during {operation}")


class AppleMusicPlatformService:
    """Apple Music implementation of the platform capability contract.

    Every call needs a developer token (service credential) in the
    ``Authorization`` header; library calls additionally send the end user's
    Music User Token. The developer token is injected per instance, never
    read from process-wide state. Apple Music offers no cover upload.
    """

    platform = Platform.APPLE_MUSIC

    def __init__(self,
                 developer_token: Optional[str] = None,
                 batch_budget: Optional[BatchBudget] = None,
                 storefront: str = DEFAULT_STOREFRONT,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 rng: Optional[random.Random] = None):
        """Initialize Apple Music platform service.

        Args:
            developer_token: Signed developer JWT, may also be set later
            batch_budget: Batch size and delay for the resolver
            storefront: Catalog storefront
            session: HTTP session, injectable for tests
            sleep: Coroutine used for the pause between track chunks
            rng: Random source for track sampling
        """
        self._developer_token = developer_token
        self.batch_budget = batch_budget or DEFAULT_BATCH_BUDGETS[Platform.APPLE_MUSIC]
        self.storefront = storefront
        self._session = session or requests.Session()
        self._sleep = sleep
        self._rng = rng
        self._matcher = ArtistMatcher('Apple Music')

    def set_service_credential(self, token: str) -> None:
        """Set the developer token for API requests."""
        self._developer_token = token

    def _headers(self, user_token: Optional[str] = None) -> Dict[str, str]:
        if not self._developer_token:
            raise ServiceCredentialMissing("Apple Music developer token not set")
        headers = {
            'Authorization': f'Bearer {self._developer_token}',
            'Content-Type': 'application/json',
        }
        if user_token:
            headers['Music-User-Token'] = user_token
        return headers

    def _request(self, method: str, path: str, operation: str,
                 user_token: Optional[str] = None, **kwargs) -> Dict[str, Any]:
        headers = self._headers(user_token)
        try:
            response = self._session.request(
                method, f"{API_BASE_URL}{path}", headers=headers, timeout=REQUEST_TIMEOUT, **kwargs
            )
        except requests.RequestException as e:
            raise TemporaryFailure(f"Apple Music request failed during {operation}: {e}") from e

        if not response.ok:
            raise map_http_error(response, operation)
        if not response.content:
            return {}
        return response.json()

    async def _call(self, method: str, path: str, operation: str,
                    user_token: Optional[str] = None, **kwargs) -> Dict[str, Any]:
        return await asyncio.to_thread(self._request, method, path, operation, user_token, **kwargs)

    def _to_domain_track(self, item: Dict[str, Any], artist_id: str) -> Track:
        attributes = item.get('attributes') or {}
        artwork = (attributes.get('artwork') or {}).get('url')
        previews = attributes.get('previews') or []

        return Track(
            name=attributes.get('name', ''),
            id=item['id'],
            artist=attributes.get('artistName') or 'Unknown Artist',
            artist_id=artist_id,
            album=attributes.get('albumName') or 'Unknown Album',
            album_artwork=artwork.replace('{w}', ARTWORK_SIZE).replace('{h}', ARTWORK_SIZE) if artwork else None,
            duration_ms=attributes.get('durationInMillis') or 0,
            preview_url=previews[0].get('url') if previews else None,
            platform_url=attributes.get('url') or f"https://music.apple.com/song/{item['id']}",
            platform=Platform.APPLE_MUSIC,
        )

    async def search_artist(self, name: str, credential: str) -> Optional[ArtistSearchResult]:
        """Search the catalog for an artist. Needs only the developer token."""
        try:
            response = await self._call(
                'GET', f"/catalog/{self.storefront}/search", 'artist search',
                params={'types': 'artists', 'term': name, 'limit': SEARCH_LIMIT},
            )
        except Exception as e:
            logger.error(f"Apple Music artist search failed for '{name}': {e}")
            return None

        items = ((response.get('results') or {}).get('artists') or {}).get('data') or []
        return self._matcher.match(
            name,
            ((a['id'], (a.get('attributes') or {}).get('name', '')) for a in items if a.get('id')),
        )

    async def get_top_tracks(self, artist_id: str, credential: str, quota: int,
                             selection_mode: Optional[SelectionMode] = None) -> List[Track]:
        """Get a sample of the artist's top songs."""
        try:
            response = await self._call(
                'GET', f"/catalog/{self.storefront}/artists/{artist_id}/view/top-songs", 'top songs',
                params={'limit': TOP_SONGS_LIMIT},
            )
        except Exception as e:
            logger.error(f"Apple Music top songs failed for artist {artist_id}: {e}")
            return []

        items = [t for t in response.get('data') or [] if t and t.get('id')]
        if not items:
            return []

        selected = select_tracks(items, quota, selection_mode, self._rng)
        return [self._to_domain_track(item, artist_id) for item in selected]

    async def create_playlist(self, user_id: str, name: str, credential: str,
                              description: Optional[str] = None) -> PlaylistResult:
        """Create a library playlist. ``user_id`` is implied by the user token."""
        response = await self._call(
            'POST', '/me/library/playlists', 'create playlist', credential,
            json={'attributes': {'name': name, 'description': description or DEFAULT_DESCRIPTION}},
        )

        data = response.get('data') or []
        if not data:
            raise TemporaryFailure("Apple Music returned no playlist after create")
        playlist = data[0]
        play_params = (playlist.get('attributes') or {}).get('playParams') or {}
        url_id = play_params.get('globalId') or playlist['id']

        logger.info(f"Created Apple Music playlist {playlist['id']}: {name}")
        return PlaylistResult(
            id=playlist['id'],
            url=f"https://music.apple.com/library/playlist/{url_id}",
        )

    async def add_tracks(self, playlist_id: str, track_ids: List[str], credential: str) -> None:
        """Add songs in sequential chunks of 100 with a short pause between chunks."""
        chunks = [track_ids[i:i + ADD_TRACKS_CHUNK] for i in range(0, len(track_ids), ADD_TRACKS_CHUNK)]
        for index, chunk in enumerate(chunks):
            await self._call(
                'POST', f"/me/library/playlists/{playlist_id}/tracks", 'add tracks', credential,
                json={'data': [{'id': track_id, 'type': 'songs'} for track_id in chunk]},
            )
            logger.debug(f"Added {len(chunk)} tracks to Apple Music playlist {playlist_id}")
            if index < len(chunks) - 1:
                await self._sleep(ADD_TRACKS_DELAY_MS / 1000)

    async def get_current_user(self, credential: str) -> PlatformUser:
        """Best available user identity.

        Apple exposes no profile endpoint; the storefront id is used when it
        can be read, otherwise a placeholder user is returned.
        """
        try:
            response = await self._call('GET', '/me/storefront', 'current user', credential)
        except ServiceCredentialMissing:
            raise
        except (TemporaryFailure, PermanentFailure, RateLimited, NotFound) as e:
            logger.warning(f"Apple Music storefront lookup failed, using placeholder user: {e}")
            return PlatformUser(id=PLACEHOLDER_USER_ID, display_name=PLACEHOLDER_DISPLAY_NAME)

        storefronts = response.get('data') or []
        storefront_id = storefronts[0].get('id') if storefronts else None
        return PlatformUser(id=storefront_id or PLACEHOLDER_USER_ID, display_name=PLACEHOLDER_DISPLAY_NAME)
