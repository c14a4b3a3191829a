import os
from typing import Dict, Any, Optional
from pathlib import Path

from dotenv import dotenv_values

from festmix.domain.entities import BatchBudget, Platform


class ConfigError(Exception):
    """Configuration error."""
    pass


DEFAULT_BATCH_BUDGETS: Dict[Platform, BatchBudget] = {
    # Spotify throttles harder than Apple Music
    Platform.SPOTIFY: BatchBudget(batch_size=3, delay_ms=1000),
    Platform.APPLE_MUSIC: BatchBudget(batch_size=5, delay_ms=500),
}

DEFAULT_MARKET = 'US'
DEFAULT_STOREFRONT = 'us'


def _env_prefix(platform: Platform) -> str:
    return f"FESTMIX_{Platform(platform).name}"


class SecretManager:
    """Manages application configuration and service secrets.

    Values come from ``<config_dir>/.env`` and are overridden by the process
    environment. End-user credentials are never stored here.
    """

    def __init__(self, config_dir: Optional[str] = None):
        """Initialize secret manager."""
        self.config_dir = Path(config_dir) if config_dir else Path.home() / '.festmix'
        self.env_file = self.config_dir / '.env'

    def load_env_vars(self) -> Dict[str, str]:
        """Load variables from the .env file, overlaid with the process environment."""
        env_vars: Dict[str, str] = {}

        if self.env_file.exists():
            try:
                env_vars.update({k: v for k, v in dotenv_values(self.env_file).items() if v is not None})
            except (IOError, UnicodeDecodeError) as e:
                raise ConfigError(f"Failed to load .env file {self.env_file}: {e}")

        env_vars.update(os.environ)
        return env_vars

    def get_apple_music_config(self) -> Dict[str, str]:
        """Get the Apple Music signing configuration for developer tokens."""
        env_vars = self.load_env_vars()

        team_id = env_vars.get('APPLE_MUSIC_TEAM_ID')
        key_id = env_vars.get('APPLE_MUSIC_KEY_ID')
        private_key = env_vars.get('APPLE_MUSIC_PRIVATE_KEY')

        if not team_id:
            raise ConfigError("APPLE_MUSIC_TEAM_ID not found in environment")
        if not key_id:
            raise ConfigError("APPLE_MUSIC_KEY_ID not found in environment")
        if not private_key:
            raise ConfigError("APPLE_MUSIC_PRIVATE_KEY not found in environment")

        return {
            'team_id': team_id,
            'key_id': key_id,
            # Keys stored on one line carry escaped newlines
            'private_key': private_key.replace('\\n', '\n'),
        }

    def get_batch_budget(self, platform: Platform) -> BatchBudget:
        """Get the batch size / delay pair for a platform, with env overrides."""
        platform = Platform(platform)
        default = DEFAULT_BATCH_BUDGETS[platform]
        env_vars = self.load_env_vars()
        prefix = _env_prefix(platform)

        try:
            batch_size = int(env_vars.get(f"{prefix}_BATCH_SIZE", default.batch_size))
            delay_ms = int(env_vars.get(f"{prefix}_BATCH_DELAY_MS", default.delay_ms))
        except ValueError as e:
            raise ConfigError(f"Invalid batch budget for {platform.value}: {e}")

        if batch_size < 1:
            raise ConfigError(f"{prefix}_BATCH_SIZE must be at least 1")
        if delay_ms < 0:
            raise ConfigError(f"{prefix}_BATCH_DELAY_MS must not be negative")

        return BatchBudget(batch_size=batch_size, delay_ms=delay_ms)

    def get_market(self) -> str:
        """Spotify market used for top tracks."""
        return self.load_env_vars().get('FESTMIX_SPOTIFY_MARKET') or DEFAULT_MARKET

    def get_storefront(self) -> str:
        """Apple Music storefront used for catalog calls."""
        return self.load_env_vars().get('FESTMIX_APPLE_MUSIC_STOREFRONT') or DEFAULT_STOREFRONT

    def validate_configuration(self) -> Dict[str, bool]:
        """Validate that all required configuration is present."""
        env_vars = self.load_env_vars()
        return {
            'apple_music_team_id': bool(env_vars.get('APPLE_MUSIC_TEAM_ID')),
            'apple_music_key_id': bool(env_vars.get('APPLE_MUSIC_KEY_ID')),
            'apple_music_private_key': bool(env_vars.get('APPLE_MUSIC_PRIVATE_KEY')),
        }

    def get_config_summary(self) -> Dict[str, Any]:
        """Get configuration summary (without sensitive data)."""
        validation = self.validate_configuration()

        return {
            'config_dir': str(self.config_dir),
            'env_file': str(self.env_file),
            'validation': validation,
            'batch_budgets': {
                p.value: vars(self.get_batch_budget(p)) for p in Platform
            },
            'market': self.get_market(),
            'storefront': self.get_storefront(),
            'has_apple_music_signing_key': all(
                validation[k] for k in ('apple_music_team_id', 'apple_music_key_id', 'apple_music_private_key')
            ),
        }


# Global instance
secret_manager = SecretManager()


def get_secret_manager() -> SecretManager:
    """Get global secret manager instance."""
    return secret_manager
