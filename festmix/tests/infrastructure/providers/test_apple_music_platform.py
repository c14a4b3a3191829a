import random
from unittest.mock import Mock

import pytest
import requests

from festmix.domain.entities import BatchBudget, Platform
from festmix.domain.errors import (
    CredentialExpired,
    RateLimited,
    ServiceCredentialMissing,
    TemporaryFailure,
)
from festmix.infrastructure.providers.apple_music import (
    API_BASE_URL,
    DEFAULT_DESCRIPTION,
    PLACEHOLDER_USER_ID,
    AppleMusicPlatformService,
)


def make_response(status: int = 200, payload=None, headers=None) -> Mock:
    response = Mock()
    response.ok = status < 400
    response.status_code = status
    response.content = b'{}' if payload is not None else b''
    response.json.return_value = payload
    response.headers = headers or {}
    return response


def apple_song(index: int) -> dict:
    return {
        'id': f"song{index}",
        'type': 'songs',
        'attributes': {
            'name': f"Song {index}",
            'artistName': 'Muse',
            'albumName': 'Absolution',
            'durationInMillis': 210000,
            'url': f"https://music.apple.com/us/song/{index}",
            'artwork': {'url': 'https://is1.mzstatic.com/image/{w}x{h}bb.jpg'},
            'previews': [{'url': f"https://audio.test/{index}.m4a"}],
        },
    }


class SleepRecorder:

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class TestAppleMusicPlatformService:
    """Tests for the Apple Music platform adapter."""

    def setup_method(self):
        self.session = Mock()
        self.sleep = SleepRecorder()
        self.service = AppleMusicPlatformService(
            developer_token="dev-token",
            session=self.session,
            sleep=self.sleep,
            rng=random.Random(0),
        )

    @pytest.mark.asyncio
    async def test_search_artist_uses_developer_token_only(self):
        self.session.request.return_value = make_response(payload={'results': {'artists': {'data': [
            {'id': '1', 'attributes': {'name': 'Muse'}},
            {'id': '2', 'attributes': {'name': 'Muse Tribute'}},
        ]}}})

        result = await self.service.search_artist("Muse", "user-token")

        assert result.id == '1'
        assert result.matched is True
        args, kwargs = self.session.request.call_args
        assert args == ('GET', f"{API_BASE_URL}/catalog/us/search")
        assert kwargs['params'] == {'types': 'artists', 'term': 'Muse', 'limit': 5}
        assert kwargs['headers']['Authorization'] == 'Bearer dev-token'
        assert 'Music-User-Token' not in kwargs['headers']

    @pytest.mark.asyncio
    async def test_search_without_developer_token_returns_none(self):
        service = AppleMusicPlatformService(session=self.session)

        assert await service.search_artist("Muse", "user-token") is None
        self.session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_search_http_error_returns_none(self):
        self.session.request.return_value = make_response(status=500)

        assert await self.service.search_artist("Muse", "tok") is None

    @pytest.mark.asyncio
    async def test_get_top_tracks_maps_songs(self):
        self.session.request.return_value = make_response(payload={'data': [apple_song(i) for i in range(10)]})

        tracks = await self.service.get_top_tracks("artist1", "tok", 2)

        args, kwargs = self.session.request.call_args
        assert args == ('GET', f"{API_BASE_URL}/catalog/us/artists/artist1/view/top-songs")
        assert kwargs['params'] == {'limit': 10}
        assert len(tracks) == 2
        track = tracks[0]
        assert track.platform is Platform.APPLE_MUSIC
        assert track.artist_id == 'artist1'
        assert track.album_artwork == 'https://is1.mzstatic.com/image/300x300bb.jpg'
        assert track.duration_ms == 210000
        assert track.preview_url.startswith('https://audio.test/')

    @pytest.mark.asyncio
    async def test_get_top_tracks_network_failure(self):
        self.session.request.side_effect = requests.ConnectionError("offline")

        assert await self.service.get_top_tracks("artist1", "tok", 3) == []

    @pytest.mark.asyncio
    async def test_create_playlist_uses_global_id(self):
        self.session.request.return_value = make_response(payload={'data': [
            {'id': 'p.123', 'attributes': {'playParams': {'globalId': 'pl.u-abc'}}}
        ]})

        playlist = await self.service.create_playlist("ignored", "Mix", "user-token")

        args, kwargs = self.session.request.call_args
        assert args == ('POST', f"{API_BASE_URL}/me/library/playlists")
        assert kwargs['headers']['Music-User-Token'] == 'user-token'
        assert kwargs['json'] == {'attributes': {'name': 'Mix', 'description': DEFAULT_DESCRIPTION}}
        assert playlist.id == 'p.123'
        assert playlist.url == 'https://music.apple.com/library/playlist/pl.u-abc'

    @pytest.mark.asyncio
    async def test_create_playlist_falls_back_to_library_id(self):
        self.session.request.return_value = make_response(payload={'data': [{'id': 'p.123'}]})

        playlist = await self.service.create_playlist("ignored", "Mix", "user-token")

        assert playlist.url == 'https://music.apple.com/library/playlist/p.123'

    @pytest.mark.asyncio
    async def test_create_playlist_expired_user_token(self):
        self.session.request.return_value = make_response(status=401)

        with pytest.raises(CredentialExpired):
            await self.service.create_playlist("ignored", "Mix", "user-token")

    @pytest.mark.asyncio
    async def test_add_tracks_chunks_with_pause(self):
        self.session.request.return_value = make_response(status=204)
        ids = [f"song{i}" for i in range(250)]

        await self.service.add_tracks("p.123", ids, "user-token")

        calls = self.session.request.call_args_list
        assert [len(c.kwargs['json']['data']) for c in calls] == [100, 100, 50]
        assert calls[0].kwargs['json']['data'][0] == {'id': 'song0', 'type': 'songs'}
        assert self.sleep.calls == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_add_tracks_rate_limited(self):
        self.session.request.return_value = make_response(status=429, headers={'Retry-After': '2'})

        with pytest.raises(RateLimited) as exc_info:
            await self.service.add_tracks("p.123", ["song1"], "user-token")
        assert exc_info.value.retry_after_ms == 2000

    @pytest.mark.asyncio
    async def test_add_tracks_network_failure(self):
        self.session.request.side_effect = requests.Timeout("slow")

        with pytest.raises(TemporaryFailure):
            await self.service.add_tracks("p.123", ["song1"], "user-token")

    @pytest.mark.asyncio
    async def test_get_current_user_from_storefront(self):
        self.session.request.return_value = make_response(payload={'data': [{'id': 'gb'}]})

        user = await self.service.get_current_user("user-token")

        assert user.id == 'gb'

    @pytest.mark.asyncio
    async def test_get_current_user_placeholder_on_failure(self):
        self.session.request.return_value = make_response(status=500)

        user = await self.service.get_current_user("user-token")

        assert user.id == PLACEHOLDER_USER_ID

    @pytest.mark.asyncio
    async def test_get_current_user_requires_developer_token(self):
        service = AppleMusicPlatformService(session=self.session)

        with pytest.raises(ServiceCredentialMissing):
            await service.get_current_user("user-token")

    @pytest.mark.asyncio
    async def test_service_credential_can_be_injected_later(self):
        service = AppleMusicPlatformService(session=self.session)
        service.set_service_credential("late-token")
        self.session.request.return_value = make_response(payload={'data': []})

        await service.get_top_tracks("artist1", "tok", 3)

        assert self.session.request.call_args.kwargs['headers']['Authorization'] == 'Bearer late-token'

    def test_instances_do_not_share_developer_token(self):
        first = AppleMusicPlatformService(session=Mock())
        second = AppleMusicPlatformService(session=Mock())

        first.set_service_credential("token-a")

        with pytest.raises(ServiceCredentialMissing):
            second._headers()

    def test_default_budget(self):
        assert self.service.batch_budget == BatchBudget(batch_size=5, delay_ms=500)
