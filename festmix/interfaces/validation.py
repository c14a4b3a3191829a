import re
from typing import Annotated, Dict, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    StringConstraints,
    ValidationError,
    ValidationInfo,
    field_validator,
)

from festmix.domain.entities import (
    Artist,
    Platform,
    SelectionMode,
    Tier,
    TrackCountMode,
    TrackCountOptions,
)


MAX_ARTISTS = 100
MAX_NAME_LENGTH = 100
MAX_REQUESTED_COUNT = 50
MAX_PLAYLIST_TRACKS = 10000

SPOTIFY_TRACK_URI = re.compile(r'^spotify:track:[a-zA-Z0-9]{22}$')
SPOTIFY_TRACK_ID = re.compile(r'^[a-zA-Z0-9]{22}$')
HTML_TAG = re.compile(r'<[^>]*>')

Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_NAME_LENGTH)]
ArtistKey = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
TrackCount = Annotated[StrictInt, Field(ge=1, le=MAX_REQUESTED_COUNT)]


class ArtistEntry(BaseModel):
    """One lineup entry as sent by the client."""

    model_config = ConfigDict(extra='ignore')

    name: Name = Field(..., description="Artist name, trimmed")
    tier: Optional[Tier] = Field(default=None, description="Billing tier")
    weight: Optional[float] = Field(default=None, ge=1, le=10, strict=True,
                                    description="Prominence on the poster")

    def to_artist(self) -> Artist:
        return Artist(name=self.name, tier=self.tier, weight=self.weight)


class SearchTracksRequest(BaseModel):
    """Track search payload: the lineup plus track count options."""

    model_config = ConfigDict(extra='ignore')

    artist_entries: List[ArtistEntry] = Field(..., alias='artists', min_length=1, max_length=MAX_ARTISTS)
    platform: Optional[Platform] = None
    track_count_mode: Optional[TrackCountMode] = Field(default=None, alias='trackCountMode')
    track_selection_mode: Optional[SelectionMode] = Field(default=None, alias='trackSelectionMode')
    custom_track_count: Optional[TrackCount] = Field(default=None, alias='customTrackCount')
    tier_counts: Optional[Dict[Tier, TrackCount]] = Field(default=None, alias='tierCounts')
    per_artist_counts: Optional[Dict[ArtistKey, TrackCount]] = Field(default=None, alias='perArtistCounts')

    @property
    def artists(self) -> List[Artist]:
        return [entry.to_artist() for entry in self.artist_entries]

    @property
    def options(self) -> TrackCountOptions:
        return TrackCountOptions(
            mode=self.track_count_mode or TrackCountMode.TIER_BASED,
            custom_count=self.custom_track_count,
            tier_counts=dict(self.tier_counts or {}),
            per_artist_counts=dict(self.per_artist_counts or {}),
            selection_mode=self.track_selection_mode,
        )


class CreatePlaylistRequest(BaseModel):
    """Playlist creation payload.

    Spotify tracks may be given as ``spotify:track:<id>`` URIs or bare ids.
    """

    model_config = ConfigDict(extra='ignore')

    platform: Optional[Platform] = None
    track_ids: List[str] = Field(
        ...,
        validation_alias=AliasChoices('trackIds', 'trackUris'),
        min_length=1,
        max_length=MAX_PLAYLIST_TRACKS,
    )
    playlist_name: Optional[Name] = Field(default=None, alias='playlistName')
    description: Optional[str] = None
    cover_image: Optional[str] = Field(default=None, alias='coverImage',
                                       description="Base64 encoded JPEG")

    @field_validator('track_ids')
    @classmethod
    def check_track_ids(cls, value: List[str], info: ValidationInfo) -> List[str]:
        # platform is declared first, so it is already in info.data
        platform = info.data.get('platform')
        for index, track_id in enumerate(value):
            if not track_id.strip():
                raise ValueError(f"track {index} must be a non-empty string")
            if platform in (None, Platform.SPOTIFY) and not (
                    SPOTIFY_TRACK_URI.match(track_id) or SPOTIFY_TRACK_ID.match(track_id)):
                raise ValueError(f"track {index} has an invalid Spotify track URI format")
        return value

    @field_validator('playlist_name')
    @classmethod
    def reject_html(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and HTML_TAG.search(value):
            raise ValueError("must not contain HTML tags")
        return value


def format_validation_error(error: ValidationError) -> List[str]:
    """One ``location: message`` line per offending field."""
    issues = []
    for item in error.errors():
        location = '.'.join(str(part) for part in item['loc']) or 'body'
        issues.append(f"{location}: {item['msg']}")
    return issues


def parse_search_tracks_request(data) -> SearchTracksRequest:
    """Validate a track search payload.

    Raises:
        ValidationError: if any field is invalid
    """
    return SearchTracksRequest.model_validate(data)


def parse_create_playlist_request(data) -> CreatePlaylistRequest:
    """Validate a playlist creation payload.

    Raises:
        ValidationError: if any field is invalid
    """
    return CreatePlaylistRequest.model_validate(data)
