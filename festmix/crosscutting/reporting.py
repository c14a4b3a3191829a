import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Any, Optional

from festmix.application.track_policy import quota_for
from festmix.domain.entities import (
    Artist,
    ArtistMatchDiagnostic,
    ResolutionResult,
    Track,
    TrackCountOptions,
)


def track_to_json(track: Track) -> Dict[str, Any]:
    """Serialize a track in the camelCase shape used by clients."""
    return {
        "name": track.name,
        "id": track.id,
        "uri": track.external_uri,
        "artist": track.artist,
        "artistId": track.artist_id,
        "album": track.album,
        "albumArtwork": track.album_artwork,
        "duration": track.duration_ms,
        "previewUrl": track.preview_url,
        "platformUrl": track.platform_url,
        "platform": track.platform.value,
    }


def diagnostic_to_json(diagnostic: ArtistMatchDiagnostic) -> Dict[str, Any]:
    return {
        "requested": diagnostic.requested,
        "found": diagnostic.found,
        "similarity": diagnostic.similarity,
        "matched": diagnostic.matched,
    }


class ArtistStatus(str, Enum):
    """Outcome of resolving one requested artist."""

    MATCHED = "matched"
    LOW_CONFIDENCE = "low_confidence"
    NOT_FOUND = "not_found"

    @classmethod
    def from_diagnostic(cls, diagnostic: ArtistMatchDiagnostic) -> "ArtistStatus":
        if diagnostic.matched:
            return cls.MATCHED
        if diagnostic.found is None:
            return cls.NOT_FOUND
        return cls.LOW_CONFIDENCE


@dataclass
class ReportHeader:
    """Header information for a resolution report."""

    request_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    platform: str = ""
    lineup_hash: str = ""
    mode: str = ""

    def to_json(self) -> Dict[str, Any]:
        return {
            "requestId": self.request_id,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "platform": self.platform,
            "lineupHash": self.lineup_hash,
            "mode": self.mode,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ReportHeader":
        return cls(
            request_id=data["requestId"],
            started_at=datetime.fromisoformat(data["startedAt"]),
            finished_at=datetime.fromisoformat(data["finishedAt"]) if data.get("finishedAt") else None,
            platform=data.get("platform", ""),
            lineup_hash=data.get("lineupHash", ""),
            mode=data.get("mode", ""),
        )


@dataclass
class ArtistReport:
    """Per-artist row of a resolution report."""

    requested: str
    status: ArtistStatus
    similarity: float
    found: Optional[str] = None
    quota: int = 0
    tracks_fetched: int = 0

    def to_json(self) -> Dict[str, Any]:
        return {
            "requested": self.requested,
            "status": self.status.value,
            "found": self.found,
            "similarity": round(self.similarity, 4),
            "quota": self.quota,
            "tracksFetched": self.tracks_fetched,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ArtistReport":
        return cls(
            requested=data["requested"],
            status=ArtistStatus(data["status"]),
            similarity=data.get("similarity", 0.0),
            found=data.get("found"),
            quota=data.get("quota", 0),
            tracks_fetched=data.get("tracksFetched", 0),
        )


@dataclass
class ResolutionReport:
    """Complete resolution report."""

    header: ReportHeader
    artists: List[ArtistReport]
    totals: Dict[str, int] = field(default_factory=dict)
    metrics: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        return {
            "header": self.header.to_json(),
            "totals": self.totals,
            "artists": [a.to_json() for a in self.artists],
            "metrics": self.metrics,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ResolutionReport":
        return cls(
            header=ReportHeader.from_json(data["header"]),
            artists=[ArtistReport.from_json(a) for a in data.get("artists", [])],
            totals=data.get("totals", {}),
            metrics=data.get("metrics", {}),
        )

    def save_to_file(self, file_path: str) -> None:
        with open(file_path, 'w') as f:
            json.dump(self.to_json(), f, indent=2, ensure_ascii=False)


def build_report(result: ResolutionResult,
                 artists: List[Artist],
                 options: Optional[TrackCountOptions] = None,
                 request_id: str = "",
                 platform: str = "",
                 lineup_hash: str = "",
                 started_at: Optional[datetime] = None,
                 metrics: Optional[Dict[str, Any]] = None) -> ResolutionReport:
    """Build a report from a resolution result and its input lineup.

    Fetched tracks are credited by lineup position, so two entries that
    matched the same catalog artist are counted separately.
    """
    options = options or TrackCountOptions()
    fetched_counts = list(result.tracks_per_artist)
    fetched_counts += [0] * (len(result.artist_matches) - len(fetched_counts))

    rows = []
    for artist, diagnostic, fetched in zip(artists, result.artist_matches, fetched_counts):
        status = ArtistStatus.from_diagnostic(diagnostic)
        matched = status is ArtistStatus.MATCHED
        rows.append(ArtistReport(
            requested=diagnostic.requested,
            status=status,
            similarity=diagnostic.similarity,
            found=diagnostic.found,
            quota=quota_for(artist, options) if matched else 0,
            tracks_fetched=fetched if matched else 0,
        ))

    totals = {status.value: 0 for status in ArtistStatus}
    for row in rows:
        totals[row.status.value] += 1
    totals["requested"] = len(rows)
    totals["tracks"] = len(result.tracks)

    header = ReportHeader(
        request_id=request_id,
        started_at=started_at or datetime.now(timezone.utc),
        finished_at=datetime.now(timezone.utc),
        platform=platform,
        lineup_hash=lineup_hash,
        mode=getattr(options.mode, 'value', str(options.mode)),
    )
    return ResolutionReport(header=header, artists=rows, totals=totals, metrics=metrics or {})
