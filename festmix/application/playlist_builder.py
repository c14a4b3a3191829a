import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from festmix.domain.entities import Platform, ResolutionResult
from festmix.domain.errors import NoTracksFound
from festmix.domain.ports import CoverUploader, MusicPlatformService


logger = logging.getLogger(__name__)


@dataclass
class PlaylistOutcome:
    """Result of building a playlist from resolved tracks."""

    playlist_id: str
    url: str
    tracks_added: int
    platform: Platform
    cover_uploaded: bool = False


def default_playlist_name(today: Optional[date] = None) -> str:
    return f"Festival Mix - {(today or date.today()).isoformat()}"


def ensure_tracks(result: ResolutionResult) -> ResolutionResult:
    """Reject a resolution that has nothing to build a playlist from."""
    if not result.tracks:
        raise NoTracksFound(
            f"No tracks found for any of the {len(result.artist_matches)} requested artists"
        )
    return result


class PlaylistBuilder:
    """Creates a playlist on a platform and fills it with resolved tracks.

    User lookup, playlist creation and track addition are hard steps and
    their errors propagate. The cover upload is best-effort.
    """

    def __init__(self, platform: MusicPlatformService):
        self.platform = platform

    async def _upload_cover(self, playlist_id: str, image_base64: str, credential: str) -> bool:
        if not isinstance(self.platform, CoverUploader):
            logger.info(f"Cover upload not supported on {self.platform.platform.value}, skipping")
            return False
        try:
            await self.platform.upload_cover(playlist_id, image_base64, credential)
            logger.info(f"Uploaded cover for playlist {playlist_id}")
            return True
        except Exception as e:
            logger.warning(f"Failed to upload cover for playlist {playlist_id}: {e}")
            return False

    async def build(self,
                    track_ids: List[str],
                    credential: str,
                    name: Optional[str] = None,
                    description: Optional[str] = None,
                    cover_image_base64: Optional[str] = None) -> PlaylistOutcome:
        """Create the playlist and add ``track_ids`` to it.

        Args:
            track_ids: Platform track ids (Spotify also accepts track URIs)
            credential: End-user bearer credential
            name: Playlist name, defaults to "Festival Mix - <date>"
            description: Optional playlist description
            cover_image_base64: Optional base64 JPEG cover

        Returns:
            PlaylistOutcome describing the created playlist
        """
        if not track_ids:
            raise NoTracksFound("No tracks to add to the playlist")

        user = await self.platform.get_current_user(credential)
        playlist_name = name or default_playlist_name()
        logger.info(f"Creating playlist '{playlist_name}' for user {user.id}")

        playlist = await self.platform.create_playlist(user.id, playlist_name, credential, description)
        await self.platform.add_tracks(playlist.id, track_ids, credential)
        logger.info(f"Added {len(track_ids)} tracks to playlist {playlist.id}")

        cover_uploaded = False
        if cover_image_base64:
            cover_uploaded = await self._upload_cover(playlist.id, cover_image_base64, credential)

        return PlaylistOutcome(
            playlist_id=playlist.id,
            url=playlist.url,
            tracks_added=len(track_ids),
            platform=self.platform.platform,
            cover_uploaded=cover_uploaded,
        )
