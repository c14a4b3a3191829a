import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt

from festmix.crosscutting.config import ConfigError, SecretManager


logger = logging.getLogger(__name__)

TOKEN_LIFETIME = timedelta(days=30)
REFRESH_MARGIN = timedelta(minutes=5)


class DeveloperTokenIssuer:
    """Signs Apple Music developer tokens (ES256 JWT).

    The issuer is created by the caller and its tokens are passed to the
    Apple Music service explicitly. An instance reuses its last token until
    shortly before it expires; nothing is cached at module level.
    """

    def __init__(self, team_id: str, key_id: str, private_key: str,
                 now: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        """Initialize the issuer.

        Args:
            team_id: Apple developer team id, used as issuer
            key_id: MusicKit key id, sent in the ``kid`` header
            private_key: PEM encoded EC private key
            now: Clock, injectable for tests
        """
        self.team_id = team_id
        self.key_id = key_id
        self.private_key = private_key
        self._now = now
        self._token: Optional[str] = None
        self._expires_at: Optional[datetime] = None

    @classmethod
    def from_config(cls, manager: SecretManager) -> "DeveloperTokenIssuer":
        config = manager.get_apple_music_config()
        return cls(config['team_id'], config['key_id'], config['private_key'])

    def _sign(self) -> str:
        issued_at = self._now()
        expires_at = issued_at + TOKEN_LIFETIME

        try:
            token = jwt.encode(
                {
                    'iss': self.team_id,
                    'iat': int(issued_at.timestamp()),
                    'exp': int(expires_at.timestamp()),
                },
                self.private_key,
                algorithm='ES256',
                headers={'alg': 'ES256', 'kid': self.key_id},
            )
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            raise ConfigError(f"Failed to sign Apple Music developer token: {e}")

        self._token = token
        self._expires_at = expires_at
        logger.info(f"Issued Apple Music developer token (kid={self.key_id}, expires {expires_at.isoformat()})")
        return token

    def get_token(self) -> str:
        """Return a valid developer token, signing a new one when needed."""
        if self._token is None or self._now() >= self._expires_at - REFRESH_MARGIN:
            return self._sign()
        return self._token
