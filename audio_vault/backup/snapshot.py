"""
Export flow: fetch the library and build a BackupPayload.

The export is strictly sequential:

    1. Account identity          (GET /me)
    2. Liked tracks              (GET /me/tracks)
    3. Playlists                 (GET /me/playlists)
    4. Tracks of each playlist   (GET /playlists/{id}/tracks, fallback /items)
    5. Saved albums              (GET /me/albums)
    6. Followed artists          (GET /me/following)

Progress is reported through the observer after every step and after
each playlist. A playlist whose tracks stay forbidden after the
fallback is skipped with a warning; any other error ends the export.
"""

from datetime import datetime, timezone

from audio_vault.backup.models import AccountSnapshot, BackupPayload, PlaylistRecord
from audio_vault.core.exceptions import RemoteRequestFailed
from audio_vault.core.logger import get_logger
from audio_vault.core.progress import ProgressObserver
from audio_vault.spotify.library import LibraryApi
from audio_vault.spotify.models import AccountIdentity, PlaylistSummary, TrackRef


logger = get_logger(__name__)

# Share of the progress bar covered by each phase
_LIKED_DONE = 10.0
_PLAYLISTS_LISTED = 15.0
_PLAYLIST_TRACKS_DONE = 90.0
_ALBUMS_DONE = 95.0


def build_playlist_record(summary: PlaylistSummary, tracks: list[TrackRef]) -> PlaylistRecord:
    """Map a remote playlist and its entries to a record; placeholders are counted, not kept."""
    restorable = tuple(t.id for t in tracks if t.available and t.id)
    return PlaylistRecord(
        id=summary.id,
        name=summary.name,
        description=summary.description,
        public=summary.public,
        collaborative=summary.collaborative,
        owner_id=summary.owner_id,
        tracks=restorable,
        unavailable_tracks=len(tracks) - len(restorable),
    )


def build_backup_payload(
    account: AccountIdentity,
    liked_tracks: list[str],
    playlists: list[PlaylistRecord],
    saved_albums: list[str] | None = None,
    followed_artists: list[str] | None = None,
    created_at: datetime | None = None,
) -> BackupPayload:
    """
    Assemble a payload from fetched entities.

    Playlists are ordered by name, case-insensitively (stable for equal
    names). Liked tracks keep the order the API returned.
    """
    ordered = sorted(playlists, key=lambda p: p.name.casefold())
    return BackupPayload(
        liked_tracks=tuple(liked_tracks),
        playlists=tuple(ordered),
        saved_albums=tuple(saved_albums or ()),
        followed_artists=tuple(followed_artists or ()),
        account=AccountSnapshot(
            id=account.id,
            display_name=account.display_name,
            country=account.country,
        ),
        created_at=(created_at or datetime.now(timezone.utc)).isoformat(),
    )


def export_library(library: LibraryApi, observer: ProgressObserver | None = None) -> BackupPayload:
    """
    Fetch the current account's library and return it as a payload.

    Args:
        library: Endpoint layer bound to an authenticated client.
        observer: Receives status and percentage events.

    Raises:
        Any engine error of the underlying calls, except a 403 on a
        single playlist's tracks (that playlist is skipped).
    """
    observer = observer or ProgressObserver()

    observer.status("Reading account...")
    account = library.current_user()
    observer.percent(0.0)

    observer.status("Fetching liked songs...")
    liked = library.liked_tracks()
    logger.info(f"Fetched {len(liked)} liked tracks")
    observer.percent(_LIKED_DONE)

    observer.status("Fetching playlists...")
    summaries = library.playlists()
    logger.info(f"Fetched {len(summaries)} playlists")
    observer.percent(_PLAYLISTS_LISTED)

    records: list[PlaylistRecord] = []
    span = _PLAYLIST_TRACKS_DONE - _PLAYLISTS_LISTED
    for index, summary in enumerate(summaries, start=1):
        observer.status(f"Fetching tracks: {summary.name}")
        try:
            tracks = library.playlist_tracks(summary.id)
        except RemoteRequestFailed as e:
            if not e.is_forbidden:
                raise
            logger.warning(f"Skipping playlist '{summary.name}': access forbidden")
        else:
            record = build_playlist_record(summary, tracks)
            if record.unavailable_tracks:
                logger.debug(
                    f"Playlist '{summary.name}': {record.unavailable_tracks} unavailable track(s)"
                )
            records.append(record)
        observer.percent(_PLAYLISTS_LISTED + span * index / len(summaries))

    observer.status("Fetching saved albums...")
    albums = library.saved_albums()
    observer.percent(_ALBUMS_DONE)

    observer.status("Fetching followed artists...")
    artists = library.followed_artists()

    payload = build_backup_payload(account, liked, records, albums, artists)
    observer.percent(100.0)
    observer.status("Export complete.")
    return payload
