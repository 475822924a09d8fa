"""
Spotify library endpoints used by export and restore.

LibraryApi maps the engine's library operations onto concrete Web API
paths, page sizes and batch limits. All HTTP behaviour (auth, retries,
pagination, batching) lives in SpotifyClient; this module only knows
endpoint shapes.

Endpoint Limits:
    GET  /me/tracks                 50 per page
    GET  /me/playlists              50 per page
    GET  /playlists/{id}/tracks     100 per page (fallback: /playlists/{id}/items)
    GET  /me/albums                 50 per page
    GET  /me/following?type=artist  50 per page, cursor based
    PUT  /me/tracks                 50 ids per request
    POST /playlists/{id}/tracks     100 uris per request
"""

from typing import Any, Callable

from audio_vault.core.exceptions import RemoteRequestFailed
from audio_vault.core.logger import get_logger
from audio_vault.spotify.client import BatchProgress, SpotifyClient
from audio_vault.spotify.models import AccountIdentity, PlaylistSummary, TrackRef


LIKED_PAGE_SIZE = 50
PLAYLIST_PAGE_SIZE = 50
PLAYLIST_TRACKS_PAGE_SIZE = 100
ALBUM_PAGE_SIZE = 50
ARTIST_PAGE_SIZE = 50

LIKE_BATCH_SIZE = 50
PLAYLIST_ADD_BATCH_SIZE = 100

logger = get_logger(__name__)

ProgressCallback = Callable[[BatchProgress], None]


def _saved_track_id(item: dict[str, Any]) -> str | None:
    track = item["track"]
    return track["id"] if track else None


def _saved_album_id(item: dict[str, Any]) -> str | None:
    return item["album"]["id"]


def _artist_id(item: dict[str, Any]) -> str | None:
    return item["id"]


def _playlist_item_track(item: Any) -> TrackRef:
    """
    Read one playlist entry, substituting a placeholder for anything unreadable.

    The /tracks listing wraps the track under "track"; the /items listing
    uses "item" (and some responses still use "track").
    """
    if not isinstance(item, dict):
        return TrackRef.placeholder()
    track = item.get("track")
    if track is None:
        track = item.get("item")
    if item.get("is_local"):
        return TrackRef.placeholder(track.get("name", "") if isinstance(track, dict) else "")
    return TrackRef.from_spotify_api(track)


class LibraryApi:
    """
    Library operations of the current account.

    Attributes:
        client: The resilient client used for every request.

    Example:
        library = LibraryApi(SpotifyClient(manager))
        me = library.current_user()
        liked = library.liked_tracks()
    """

    def __init__(self, client: SpotifyClient) -> None:
        self.client = client

    # =========================================================================
    # Reads
    # =========================================================================

    def current_user(self) -> AccountIdentity:
        return AccountIdentity.from_spotify_api(self.client.call("/me"))

    def liked_tracks(self) -> list[str]:
        """Ids of every saved ("liked") track, newest first as the API lists them."""
        return self.client.paginate(
            lambda offset, limit: self.client.call(
                "/me/tracks", params={"limit": limit, "offset": offset}
            ),
            limit=LIKED_PAGE_SIZE,
            extract=_saved_track_id,
        )

    def playlists(self) -> list[PlaylistSummary]:
        """Every playlist in the user's library, owned or followed."""
        return self.client.paginate(
            lambda offset, limit: self.client.call(
                "/me/playlists", params={"limit": limit, "offset": offset}
            ),
            limit=PLAYLIST_PAGE_SIZE,
            extract=PlaylistSummary.from_spotify_api,
        )

    def playlist_tracks(self, playlist_id: str) -> list[TrackRef]:
        """
        Every entry of a playlist, in playlist order.

        Unreadable entries (local files, removed tracks, podcast episodes,
        malformed items) become placeholders instead of aborting the
        listing, so positions are preserved.

        Raises:
            RemoteRequestFailed: With status 403 if both the primary and
                                 the alternate listing are forbidden.
        """
        def listing(path: str) -> Callable[[], list[TrackRef]]:
            return lambda: self.client.paginate(
                lambda offset, limit: self.client.call(
                    path, params={"limit": limit, "offset": offset}
                ),
                limit=PLAYLIST_TRACKS_PAGE_SIZE,
                extract=_playlist_item_track,
            )

        primary_path = f"/playlists/{playlist_id}/tracks"
        return self.client.fetch_with_fallback(
            listing(primary_path),
            listing(f"/playlists/{playlist_id}/items"),
            primary_path,
        )

    def saved_albums(self) -> list[str]:
        return self.client.paginate(
            lambda offset, limit: self.client.call(
                "/me/albums", params={"limit": limit, "offset": offset}
            ),
            limit=ALBUM_PAGE_SIZE,
            extract=_saved_album_id,
        )

    def followed_artists(self) -> list[str]:
        def fetch_page(after: str | None) -> Any:
            params: dict[str, Any] = {"type": "artist", "limit": ARTIST_PAGE_SIZE}
            if after:
                params["after"] = after
            return self.client.call("/me/following", params=params)

        return self.client.paginate_cursor(fetch_page, container="artists", extract=_artist_id)

    # =========================================================================
    # Writes
    # =========================================================================

    def save_liked_tracks(
        self,
        track_ids: list[str],
        on_progress: ProgressCallback | None = None,
    ) -> int:
        return self.client.batch_mutate(
            track_ids,
            LIKE_BATCH_SIZE,
            lambda batch: self.client.call("/me/tracks", method="PUT", body={"ids": batch}),
            on_progress=on_progress,
        )

    def create_playlist(
        self,
        user_id: str,
        name: str,
        description: str = "",
        public: bool = False,
    ) -> PlaylistSummary:
        path = f"/users/{user_id}/playlists"
        created = self.client.call(
            path,
            method="POST",
            body={"name": name, "description": description, "public": public},
        )
        logger.debug(f"Created playlist '{name}'")
        if not created:
            raise RemoteRequestFailed(None, path, "empty response to playlist creation")
        summary = PlaylistSummary.from_spotify_api(created)
        # Some accounts get public=null back; keep the requested flag
        return PlaylistSummary(
            id=summary.id,
            name=summary.name,
            description=summary.description or description,
            public=public,
            collaborative=summary.collaborative,
            owner_id=summary.owner_id or user_id,
            total_tracks=summary.total_tracks,
            snapshot_id=summary.snapshot_id,
        )

    def add_tracks_to_playlist(
        self,
        playlist_id: str,
        track_ids: list[str],
        on_progress: ProgressCallback | None = None,
    ) -> int:
        return self.client.batch_mutate(
            track_ids,
            PLAYLIST_ADD_BATCH_SIZE,
            lambda batch: self.client.call(
                f"/playlists/{playlist_id}/tracks",
                method="POST",
                body={"uris": [f"spotify:track:{track_id}" for track_id in batch]},
            ),
            on_progress=on_progress,
        )
