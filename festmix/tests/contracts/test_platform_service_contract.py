import inspect
from unittest.mock import Mock

import pytest

from festmix.domain.entities import BatchBudget, Platform
from festmix.domain.ports import CoverUploader, RequiresServiceCredential
from festmix.infrastructure.providers.apple_music import AppleMusicPlatformService
from festmix.infrastructure.providers.spotify import SpotifyPlatformService


CONTRACT_METHODS = ['search_artist', 'get_top_tracks', 'create_playlist', 'add_tracks', 'get_current_user']


def build_services():
    return [
        SpotifyPlatformService(client_factory=lambda credential: Mock()),
        AppleMusicPlatformService(developer_token="dev", session=Mock()),
    ]


class TestPlatformServiceContract:
    """Every platform service exposes the same capability contract."""

    @pytest.mark.parametrize("service", build_services(), ids=["spotify", "apple-music"])
    def test_contract_methods_are_coroutines(self, service):
        for name in CONTRACT_METHODS:
            assert inspect.iscoroutinefunction(getattr(service, name)), name

    @pytest.mark.parametrize("service", build_services(), ids=["spotify", "apple-music"])
    def test_exposes_platform_and_budget(self, service):
        assert isinstance(service.platform, Platform)
        assert isinstance(service.batch_budget, BatchBudget)
        assert service.batch_budget.batch_size >= 1

    def test_default_budgets_differ_per_platform(self):
        spotify, apple = build_services()

        assert spotify.batch_budget == BatchBudget(batch_size=3, delay_ms=1000)
        assert apple.batch_budget == BatchBudget(batch_size=5, delay_ms=500)

    def test_optional_capabilities(self):
        spotify, apple = build_services()

        assert isinstance(spotify, CoverUploader)
        assert not isinstance(apple, CoverUploader)
        assert isinstance(apple, RequiresServiceCredential)
        assert not isinstance(spotify, RequiresServiceCredential)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("service", build_services(), ids=["spotify", "apple-music"])
    async def test_search_failure_returns_none(self, service):
        if isinstance(service, SpotifyPlatformService):
            service._client_factory = Mock(side_effect=RuntimeError("network down"))
        else:
            service._session.request.side_effect = RuntimeError("network down")

        assert await service.search_artist("Muse", "tok") is None
        assert await service.get_top_tracks("artist", "tok", 3) == []
