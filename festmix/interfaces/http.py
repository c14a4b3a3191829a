import asyncio
import os
import logging
from datetime import datetime
from typing import Callable, Optional, Tuple

from flask import Flask, request, jsonify
from pydantic import ValidationError

from festmix.application.matching import POOR_MATCH_THRESHOLD
from festmix.application.pipeline import TrackResolver
from festmix.application.playlist_builder import PlaylistBuilder, ensure_tracks
from festmix.crosscutting.config import ConfigError, SecretManager, get_secret_manager
from festmix.crosscutting.logging import log_error
from festmix.crosscutting.reporting import diagnostic_to_json, track_to_json
from festmix.domain.entities import Platform
from festmix.domain.errors import CredentialExpired, NoTracksFound, RateLimited
from festmix.domain.ports import MusicPlatformService, RequiresServiceCredential
from festmix.infrastructure.apple_developer_token import DeveloperTokenIssuer
from festmix.infrastructure.providers.registry import get_platform_service
from festmix.interfaces.validation import (
    format_validation_error,
    parse_create_playlist_request,
    parse_search_tracks_request,
)


PLATFORM_LABELS = {
    Platform.SPOTIFY: 'Spotify',
    Platform.APPLE_MUSIC: 'Apple Music',
}


class HTTPServer:
    """HTTP interface for festmix: track search and playlist creation."""

    def __init__(self, host: str = 'localhost', port: int = 3000, debug: bool = False,
                 config: Optional[SecretManager] = None,
                 platform_factory: Optional[Callable[[Platform], MusicPlatformService]] = None,
                 token_issuer: Optional[DeveloperTokenIssuer] = None):
        """Initialize HTTP server.

        Args:
            host: Bind address
            port: Bind port
            debug: Flask debug mode
            config: Configuration source, defaults to the global secret manager
            platform_factory: Builds a platform service per request
            token_issuer: Apple Music developer token issuer, built from config when omitted
        """
        self.host = host
        self.port = port
        self.debug = debug
        self.app = Flask(__name__)
        self.logger = logging.getLogger(__name__)

        self.version = "0.1.0"
        self.commit = os.getenv('GIT_COMMIT', 'unknown')

        self.config = config or get_secret_manager()
        self.platform_factory = platform_factory or (lambda p: get_platform_service(p, self.config))
        self._token_issuer = token_issuer

        self._setup_routes()

    def _developer_token(self) -> str:
        if self._token_issuer is None:
            self._token_issuer = DeveloperTokenIssuer.from_config(self.config)
        return self._token_issuer.get_token()

    def _platform_service(self, platform: Platform) -> MusicPlatformService:
        service = self.platform_factory(platform)
        if isinstance(service, RequiresServiceCredential):
            service.set_service_credential(self._developer_token())
        return service

    @staticmethod
    def _bearer_credential() -> Optional[str]:
        header = request.headers.get('Authorization', '')
        if not header.lower().startswith('bearer '):
            return None
        credential = header[7:].strip()
        return credential or None

    def _error_response(self, error: Exception, platform: Platform, action: str) -> Tuple:
        label = PLATFORM_LABELS[platform]
        if isinstance(error, CredentialExpired):
            return jsonify({'error': f'{label} authentication expired. Please log in again.'}), 401
        if isinstance(error, RateLimited):
            response = jsonify({'error': f'{label} rate limit exceeded. Please wait a moment and try again.'})
            response.headers['Retry-After'] = str(max(1, error.retry_after_ms // 1000))
            return response, 429
        if isinstance(error, ConfigError):
            self.logger.error(f"Configuration error while trying to {action}: {error}")
            return jsonify({'error': f'{label} is not configured on this server'}), 500

        log_error(self.logger, f"Failed to {action} on {platform.value}", error, platform=platform.value)
        return jsonify({'error': str(error) or f'Failed to {action}'}), 500

    def _log_match_quality(self, artist_matches, platform: Platform) -> None:
        poor = [m for m in artist_matches if m.found and m.similarity < POOR_MATCH_THRESHOLD]
        missing = [m for m in artist_matches if not m.found]
        for m in poor:
            self.logger.info(f"Fuzzy match (might be wrong): \"{m.requested}\" -> \"{m.found}\" ({m.similarity:.0%})")
        for m in missing:
            self.logger.info(f"Artist not found on {platform.value}: \"{m.requested}\"")

    def _setup_routes(self) -> None:
        """Setup Flask routes."""

        @self.app.route('/health', methods=['GET'])
        def health_check():
            """Health check endpoint."""
            return jsonify({
                'status': 'healthy',
                'version': self.version,
                'commit': self.commit,
                'timestamp': datetime.now().isoformat()
            }), 200

        @self.app.route('/', methods=['GET'])
        def root():
            """Root endpoint with basic info."""
            return jsonify({
                'service': 'festmix HTTP Interface',
                'version': self.version,
                'platforms': [p.value for p in Platform],
                'endpoints': {
                    'health': '/health',
                    'search_tracks': '/api/search-tracks',
                    'create_playlist': '/api/create-playlist'
                }
            }), 200

        @self.app.route('/api/search-tracks', methods=['POST'])
        def search_tracks():
            """Resolve a lineup into tracks on the requested platform."""
            credential = self._bearer_credential()
            if not credential:
                return jsonify({'error': 'Not authenticated'}), 401

            try:
                payload = parse_search_tracks_request(request.get_json(silent=True))
            except ValidationError as e:
                self.logger.warning(f"Search tracks validation error: {e}")
                return jsonify({'error': 'Invalid request data', 'details': format_validation_error(e)}), 400

            platform = payload.platform or Platform.SPOTIFY
            try:
                service = self._platform_service(platform)
                self.logger.info(f"Searching tracks for {len(payload.artists)} artists on {platform.value}")
                result = asyncio.run(TrackResolver(service).resolve(payload.artists, credential, payload.options))
                self._log_match_quality(result.artist_matches, platform)
                ensure_tracks(result)
            except NoTracksFound:
                return jsonify({'error': 'Could not find any tracks for the provided artists'}), 400
            except Exception as e:
                return self._error_response(e, platform, 'search tracks')

            return jsonify({
                'tracks': [track_to_json(t) for t in result.tracks],
                'artistsSearched': len(payload.artists),
                'tracksFound': result.tracks_found,
                'foundArtists': result.found_artists,
                'artistMatches': [diagnostic_to_json(m) for m in result.artist_matches],
            }), 200

        @self.app.route('/api/create-playlist', methods=['POST'])
        def create_playlist():
            """Create a playlist from previously resolved tracks."""
            credential = self._bearer_credential()
            if not credential:
                return jsonify({'error': 'Not authenticated'}), 401

            try:
                payload = parse_create_playlist_request(request.get_json(silent=True))
            except ValidationError as e:
                self.logger.warning(f"Create playlist validation error: {e}")
                return jsonify({'error': 'Invalid request data', 'details': format_validation_error(e)}), 400

            platform = payload.platform or Platform.SPOTIFY
            try:
                service = self._platform_service(platform)
                outcome = asyncio.run(PlaylistBuilder(service).build(
                    payload.track_ids,
                    credential,
                    name=payload.playlist_name,
                    description=payload.description,
                    cover_image_base64=payload.cover_image,
                ))
            except Exception as e:
                return self._error_response(e, platform, 'create playlist')

            self.logger.info(f"Playlist created successfully: {outcome.url}")
            return jsonify({
                'playlistUrl': outcome.url,
                'playlistId': outcome.playlist_id,
                'tracksAdded': outcome.tracks_added,
                'platform': outcome.platform.value,
                'coverUploaded': outcome.cover_uploaded,
            }), 200

    def run(self) -> None:
        """Run the HTTP server."""
        self.logger.info(f"Starting festmix HTTP server on {self.host}:{self.port}")
        self.app.run(
            host=self.host,
            port=self.port,
            debug=self.debug
        )


def create_app(**kwargs) -> Flask:
    """Create Flask app for testing."""
    server = HTTPServer(**kwargs)
    return server.app


if __name__ == '__main__':
    server = HTTPServer()
    server.run()
