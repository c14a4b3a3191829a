import asyncio
import logging
import uuid
from typing import Awaitable, Callable, List, Optional, Tuple

from festmix.application.batching import run_batched
from festmix.application.idempotency import calculate_lineup_hash
from festmix.application.matching import summarize_matches
from festmix.application.track_policy import quota_for
from festmix.crosscutting.logging import (
    CorrelationContext,
    log_phase_complete,
    log_resolution_complete,
    log_resolution_start,
)
from festmix.crosscutting.metrics import MetricsCollector
from festmix.domain.entities import (
    Artist,
    ArtistMatchDiagnostic,
    ArtistSearchResult,
    BatchBudget,
    ResolutionResult,
    SelectionMode,
    Track,
    TrackCountOptions,
)
from festmix.domain.ports import MusicPlatformService, RequiresServiceCredential


logger = logging.getLogger(__name__)

SEARCH_PHASE = "search"
FETCH_PHASE = "fetch"

DEFAULT_SELECTION_MODE = SelectionMode.POPULAR


class TrackResolver:
    """Resolves a lineup into playable tracks on one platform.

    The resolution is a linear sequence: batched artist search, filtering of
    accepted matches, per-artist quota, batched top-track fetch, assembly.
    Search and fetch failures never abort the run; they only shrink the
    result and show up in the diagnostics.
    """

    def __init__(self,
                 platform: MusicPlatformService,
                 budget: Optional[BatchBudget] = None,
                 metrics: Optional[MetricsCollector] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """Initialize the resolver.

        Args:
            platform: Platform service used for search and top tracks
            budget: Batch size and delay, defaults to the platform's own budget
            metrics: Optional collector for per-batch metrics
            sleep: Coroutine used for inter-batch pauses
        """
        self.platform = platform
        self.budget = budget or platform.batch_budget
        self.metrics = metrics
        self._sleep = sleep

    async def _search(self, name: str, credential: str) -> Optional[ArtistSearchResult]:
        try:
            return await self.platform.search_artist(name, credential)
        except Exception as e:
            logger.warning(f"Artist search failed for '{name}': {e}")
            return None

    async def _fetch(self, artist_id: str, credential: str, quota: int,
                     selection_mode: SelectionMode) -> List[Track]:
        try:
            return await self.platform.get_top_tracks(artist_id, credential, quota, selection_mode)
        except Exception as e:
            logger.warning(f"Top tracks fetch failed for artist {artist_id}: {e}")
            return []

    async def resolve(self,
                      artists: List[Artist],
                      credential: str,
                      options: Optional[TrackCountOptions] = None,
                      service_credential: Optional[str] = None,
                      request_id: Optional[str] = None) -> ResolutionResult:
        """Resolve ``artists`` into tracks.

        Args:
            artists: Lineup, in poster order. Not modified.
            credential: End-user bearer credential, used read-only for every call
            options: Track-count options, tier-based when omitted
            service_credential: Platform service credential, injected before any call
            request_id: Correlation id for log lines, generated when omitted

        Returns:
            ResolutionResult with one diagnostic per input artist
        """
        options = options or TrackCountOptions()
        selection_mode = options.selection_mode or DEFAULT_SELECTION_MODE
        platform_name = getattr(self.platform.platform, 'value', str(self.platform.platform))

        if service_credential and isinstance(self.platform, RequiresServiceCredential):
            self.platform.set_service_credential(service_credential)

        context = CorrelationContext(
            request_id=request_id or uuid.uuid4().hex[:12],
            lineup_hash=calculate_lineup_hash(artists, options),
            platform=platform_name,
        )
        with context:
            log_resolution_start(logger, platform_name, len(artists),
                                 mode=getattr(options.mode, 'value', options.mode),
                                 batch_size=self.budget.batch_size,
                                 delay_ms=self.budget.delay_ms)

            # Search phase
            with CorrelationContext(phase=SEARCH_PHASE):
                search_results = await run_batched(
                    [artist.name for artist in artists],
                    lambda name: self._search(name, credential),
                    self.budget.batch_size,
                    self.budget.delay_ms,
                    sleep=self._sleep,
                    metrics=self.metrics,
                    phase=SEARCH_PHASE,
                )

            artist_matches = [
                ArtistMatchDiagnostic.from_search(artist.name, result)
                for artist, result in zip(artists, search_results)
            ]
            stats = summarize_matches(artist_matches)
            log_phase_complete(logger, SEARCH_PHASE, len(artists), **stats)

            accepted: List[Tuple[Artist, ArtistSearchResult]] = [
                (artist, result)
                for artist, result in zip(artists, search_results)
                if result is not None and result.matched
            ]
            logger.info(f"Matched {len(accepted)}/{len(artists)} artists on {platform_name}")

            # Quota phase
            work = []
            for artist, result in accepted:
                quota = quota_for(artist, options)
                logger.debug(f"{artist.name}: {quota} tracks")
                work.append((result.id, quota))

            # Fetch phase
            with CorrelationContext(phase=FETCH_PHASE):
                track_lists = await run_batched(
                    work,
                    lambda item: self._fetch(item[0], credential, item[1], selection_mode),
                    self.budget.batch_size,
                    self.budget.delay_ms,
                    sleep=self._sleep,
                    metrics=self.metrics,
                    phase=FETCH_PHASE,
                )

            tracks = [track for track_list in track_lists for track in track_list]
            fetched = iter(track_lists)
            tracks_per_artist = [
                len(next(fetched)) if result is not None and result.matched else 0
                for result in search_results
            ]
            log_phase_complete(logger, FETCH_PHASE, len(work), tracks_found=len(tracks))

            if self.metrics:
                self.metrics.finish()
            log_resolution_complete(logger, len(accepted), len(artists), len(tracks))

        return ResolutionResult(
            tracks=tracks,
            found_artists=len(accepted),
            artist_matches=artist_matches,
            tracks_per_artist=tracks_per_artist,
        )


async def resolve_tracks(platform: MusicPlatformService,
                         artists: List[Artist],
                         credential: str,
                         options: Optional[TrackCountOptions] = None,
                         service_credential: Optional[str] = None,
                         **resolver_kwargs) -> ResolutionResult:
    """Resolve a lineup into tracks on ``platform``.

    Convenience wrapper around ``TrackResolver``; extra keyword arguments
    (budget, metrics, sleep) are passed to the resolver.
    """
    resolver = TrackResolver(platform, **resolver_kwargs)
    return await resolver.resolve(artists, credential, options, service_credential)
