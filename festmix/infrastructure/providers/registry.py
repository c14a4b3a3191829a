from typing import Optional

from festmix.crosscutting.config import SecretManager
from festmix.domain.entities import Platform
from festmix.domain.ports import MusicPlatformService
from festmix.infrastructure.providers.apple_music import AppleMusicPlatformService
from festmix.infrastructure.providers.spotify import SpotifyPlatformService


def get_platform_service(platform, config: Optional[SecretManager] = None, **kwargs) -> MusicPlatformService:
    """Build a fresh platform service for one request.

    Args:
        platform: Platform enum or its value (``spotify``, ``apple-music``)
        config: Optional configuration supplying batch budget and market/storefront
        **kwargs: Passed to the service constructor

    Returns:
        New platform service instance
    """
    try:
        platform = Platform(platform)
    except ValueError:
        raise ValueError(f"Unsupported platform: {platform}")

    if config is not None:
        kwargs.setdefault('batch_budget', config.get_batch_budget(platform))

    if platform is Platform.SPOTIFY:
        if config is not None:
            kwargs.setdefault('market', config.get_market())
        return SpotifyPlatformService(**kwargs)

    if config is not None:
        kwargs.setdefault('storefront', config.get_storefront())
    return AppleMusicPlatformService(**kwargs)
