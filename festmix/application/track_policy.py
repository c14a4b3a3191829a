from typing import Dict, Optional

from festmix.domain.entities import Artist, Tier, TrackCountMode, TrackCountOptions


MIN_TRACKS = 1
MAX_TRACKS = 10
NO_TIER_DEFAULT = 3

TIER_DEFAULTS: Dict[Tier, int] = {
    Tier.HEADLINER: 10,
    Tier.SUB_HEADLINER: 5,
    Tier.MID_TIER: 3,
    Tier.UNDERCARD: 1,
}


def clamp_count(value) -> int:
    """Clamp a requested track count into [1, 10]."""
    return max(MIN_TRACKS, min(MAX_TRACKS, int(value)))


def tier_default(tier: Optional[Tier]) -> int:
    if tier is None:
        return NO_TIER_DEFAULT
    return TIER_DEFAULTS.get(Tier(tier), NO_TIER_DEFAULT)


def quota_for(artist: Artist, options: Optional[TrackCountOptions] = None) -> int:
    """Number of tracks to fetch for ``artist``.

    Modes are mutually exclusive: per-artist overrides are only consulted in
    ``per-artist`` mode, tier overrides only in ``custom-per-tier`` mode and
    the flat count only in ``custom`` mode. Anything else falls back to the
    tier default.
    """
    options = options or TrackCountOptions()
    mode = TrackCountMode(options.mode)

    if mode is TrackCountMode.PER_ARTIST and artist.name in options.per_artist_counts:
        return clamp_count(options.per_artist_counts[artist.name])

    if mode is TrackCountMode.CUSTOM_PER_TIER and artist.tier is not None:
        tier_counts = {Tier(k): v for k, v in options.tier_counts.items()}
        if Tier(artist.tier) in tier_counts:
            return clamp_count(tier_counts[Tier(artist.tier)])

    if mode is TrackCountMode.CUSTOM and options.custom_count is not None:
        return clamp_count(options.custom_count)

    return tier_default(artist.tier)
