import argparse
import asyncio
import json
import os
import sys
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from festmix.application.idempotency import calculate_lineup_hash
from festmix.application.matching import summarize_matches
from festmix.application.pipeline import TrackResolver
from festmix.application.playlist_builder import PlaylistBuilder, ensure_tracks
from festmix.crosscutting.config import SecretManager, get_secret_manager
from festmix.crosscutting.logging import setup_logging
from festmix.crosscutting.metrics import MetricsCollector
from festmix.crosscutting.reporting import build_report
from festmix.domain.entities import Platform, ResolutionResult, SelectionMode, TrackCountMode
from festmix.domain.ports import MusicPlatformService, RequiresServiceCredential
from festmix.infrastructure.apple_developer_token import DeveloperTokenIssuer
from festmix.infrastructure.providers.registry import get_platform_service
from festmix.interfaces.validation import SearchTracksRequest, parse_search_tracks_request


CREDENTIAL_ENV_VARS = {
    Platform.SPOTIFY: 'SPOTIFY_ACCESS_TOKEN',
    Platform.APPLE_MUSIC: 'APPLE_MUSIC_USER_TOKEN',
}


class CLI:
    """Command Line Interface for festmix."""

    def __init__(self, config: Optional[SecretManager] = None):
        """Initialize CLI."""
        self.config = config
        self.parser = self._create_parser()
        self._start_time = None

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        parser = argparse.ArgumentParser(
            prog='festmix',
            description='Turn a festival lineup into a playlist on Spotify or Apple Music'
        )

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        resolve_parser = subparsers.add_parser('resolve', help='Resolve a lineup into tracks')
        resolve_parser.add_argument(
            '--platform',
            choices=[p.value for p in Platform],
            default=Platform.SPOTIFY.value,
            help='Target platform (default: spotify)'
        )
        resolve_parser.add_argument(
            '--artists',
            required=True,
            help='JSON file with a list of artists, or an object with "artists" and options'
        )
        resolve_parser.add_argument(
            '--mode',
            choices=[m.value for m in TrackCountMode],
            default=None,
            help='Track count mode (default: tier-based)'
        )
        resolve_parser.add_argument(
            '--count',
            type=int,
            default=None,
            help='Tracks per artist, implies --mode custom'
        )
        resolve_parser.add_argument(
            '--selection',
            choices=[m.value for m in SelectionMode],
            default=None,
            help='Track selection mode (default: popular)'
        )
        resolve_parser.add_argument(
            '--report-path',
            default='reports/',
            help='Path to save reports (default: reports/)'
        )
        resolve_parser.add_argument(
            '--create-playlist',
            action='store_true',
            help='Create a playlist from the resolved tracks'
        )
        resolve_parser.add_argument(
            '--playlist-name',
            default=None,
            help='Playlist name (default: "Festival Mix - <date>")'
        )
        self._add_common_arguments(resolve_parser)

        config_parser = subparsers.add_parser('config', help='Show configuration summary')
        self._add_common_arguments(config_parser)

        return parser

    @staticmethod
    def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            '--env-file',
            default=None,
            help='Load environment variables from this dotenv file'
        )
        parser.add_argument(
            '--log-level',
            choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
            default='INFO',
            help='Set logging level'
        )
        parser.add_argument(
            '--json-logs',
            action='store_true',
            help='Emit structured JSON log lines'
        )

    def _create_request_id(self) -> str:
        return f"festmix_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

    def _get_env_token(self, platform: Platform) -> Optional[str]:
        """Get the end-user credential from environment variables."""
        value = os.getenv(CREDENTIAL_ENV_VARS[Platform(platform)])
        if value is None or not str(value).strip():
            return None
        return value

    def _load_request(self, args: argparse.Namespace) -> SearchTracksRequest:
        """Read the artists file and merge command line options into it."""
        with open(args.artists, 'r', encoding='utf-8') as f:
            data = json.load(f)

        payload: Dict[str, Any] = dict(data) if isinstance(data, dict) else {'artists': data}
        payload['platform'] = args.platform
        if args.count is not None:
            if args.mode not in (None, TrackCountMode.CUSTOM.value):
                raise ValueError(f"--count only applies to --mode {TrackCountMode.CUSTOM.value}")
            payload['trackCountMode'] = TrackCountMode.CUSTOM.value
            payload['customTrackCount'] = args.count
        elif args.mode:
            payload['trackCountMode'] = args.mode
        if args.selection:
            payload['trackSelectionMode'] = args.selection

        return parse_search_tracks_request(payload)

    def _create_platform(self, platform: Platform) -> MusicPlatformService:
        service = get_platform_service(platform, self.config)
        if isinstance(service, RequiresServiceCredential):
            service.set_service_credential(DeveloperTokenIssuer.from_config(self.config).get_token())
        return service

    def _print_summary(self, result: ResolutionResult, platform: Platform) -> None:
        stats = summarize_matches(result.artist_matches)
        print(f"Resolved {result.found_artists}/{len(result.artist_matches)} artists "
              f"into {result.tracks_found} tracks on {platform.value}")
        print(f"Low confidence: {stats['low_confidence']}, not found: {stats['not_found']}")
        for match in result.artist_matches:
            if not match.matched:
                found = f'"{match.found}" ({match.similarity:.0%})' if match.found else 'not found'
                print(f"  - {match.requested}: {found}")

    def _resolve(self, args: argparse.Namespace) -> None:
        """Resolve a lineup and optionally build the playlist."""
        logger = logging.getLogger(__name__)

        platform = Platform(args.platform)
        credential = self._get_env_token(platform)
        if not credential:
            raise ValueError(f"{CREDENTIAL_ENV_VARS[platform]} environment variable is required")

        payload = self._load_request(args)
        request_id = self._create_request_id()
        started_at = datetime.now(timezone.utc)
        metrics = MetricsCollector(request_id=request_id, platform=platform.value)

        service = self._create_platform(platform)
        resolver = TrackResolver(service, metrics=metrics)
        result = asyncio.run(resolver.resolve(payload.artists, credential, payload.options,
                                              request_id=request_id))

        self._print_summary(result, platform)
        self._save_report(result, payload, request_id, platform, started_at, metrics, args.report_path)

        if args.create_playlist:
            ensure_tracks(result)
            outcome = asyncio.run(PlaylistBuilder(service).build(
                [t.id for t in result.tracks], credential, name=args.playlist_name
            ))
            logger.info(f"Playlist created: {outcome.url}")
            print(f"Playlist: {outcome.url} ({outcome.tracks_added} tracks)")

    def _save_report(self, result: ResolutionResult, payload: SearchTracksRequest, request_id: str,
                     platform: Platform, started_at: datetime, metrics: MetricsCollector,
                     report_path: str) -> None:
        """Write the resolution report as JSON."""
        logger = logging.getLogger(__name__)

        os.makedirs(report_path, exist_ok=True)
        report = build_report(
            result,
            payload.artists,
            payload.options,
            request_id=request_id,
            platform=platform.value,
            lineup_hash=calculate_lineup_hash(payload.artists, payload.options),
            started_at=started_at,
            metrics=metrics.to_dict(),
        )
        report_file = os.path.join(report_path, f"resolution_report_{request_id}.json")
        report.save_to_file(report_file)
        logger.info(f"Report saved to: {report_file}")

    def _show_config(self, args: argparse.Namespace) -> None:
        print(json.dumps(self.config.get_config_summary(), indent=2))

    def run(self, argv: Optional[List[str]] = None) -> None:
        """Run the CLI."""
        self._start_time = time.time()
        logger = logging.getLogger(__name__)

        args = self.parser.parse_args(argv)
        if not args.command:
            self.parser.print_help()
            sys.exit(1)

        if args.env_file:
            load_dotenv(args.env_file, override=False)
        if self.config is None:
            self.config = get_secret_manager()

        setup_logging(args.log_level, structured=args.json_logs)

        try:
            if args.command == 'resolve':
                self._resolve(args)
            elif args.command == 'config':
                self._show_config(args)
        except KeyboardInterrupt:
            logger.warning("Operation cancelled by user")
            sys.exit(130)
        except Exception as e:
            logger.error(f"CLI error: {e}")
            sys.exit(1)
        finally:
            logger.debug(f"CLI execution time: {time.time() - self._start_time:.2f}s")


def main():
    """Main entry point."""
    cli = CLI()
    cli.run()


if __name__ == '__main__':
    main()
