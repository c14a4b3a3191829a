import hashlib
import json
from typing import Any, Dict, List, Optional

from festmix.domain.entities import Artist, TrackCountOptions


def _enum_value(value) -> Any:
    return getattr(value, "value", value)


def lineup_key(artist: Artist) -> Dict[str, Any]:
    """Stable, JSON-friendly representation of one lineup entry."""
    return {
        "name": artist.name,
        "tier": _enum_value(artist.tier),
        "weight": artist.weight,
    }


def options_key(options: Optional[TrackCountOptions]) -> Dict[str, Any]:
    options = options or TrackCountOptions()
    return {
        "mode": _enum_value(options.mode),
        "customCount": options.custom_count,
        "tierCounts": {_enum_value(k): v for k, v in sorted(
            options.tier_counts.items(), key=lambda item: _enum_value(item[0]))},
        "perArtistCounts": dict(sorted(options.per_artist_counts.items())),
        "selectionMode": _enum_value(options.selection_mode),
    }


def calculate_lineup_hash(artists: List[Artist], options: Optional[TrackCountOptions] = None) -> str:
    """Calculate a stable hash for a lineup and its track-count options.

    Artist order is significant since it drives the order of the result.
    Identical inputs always produce the identical hash, which makes two
    resolutions of the same request easy to correlate in logs and reports.
    """
    payload = {
        "artists": [lineup_key(a) for a in artists],
        "options": options_key(options),
    }
    encoded = json.dumps(payload, sort_keys=True, ensure_ascii=False)
    return hashlib.sha256(encoded.encode('utf-8')).hexdigest()
