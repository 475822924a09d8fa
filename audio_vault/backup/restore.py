"""
Idempotent replay of a backup into the current account.

RestoreReconciler.restore() validates the payload, then:

    1. Resolves the current account (GET /me)
    2. Writes all liked track ids in batches of 50
    3. If reuse is enabled, indexes the account's OWN playlists by signature
    4. For each payload playlist, in payload order:
         - signature match in the index  -> reuse it, no metadata changes
         - otherwise                      -> create it (and index it when
                                             reuse is enabled)
         - adds its track ids in batches of 100

Signature:
    (trimmed lowercase name, trimmed lowercase description, public flag).
    Playlists owned by someone else are never candidates, even with an
    identical signature.

Failure:
    Restore is not transactional. An error propagates as-is and every
    remote write already made stays in place; the last counts event
    tells the caller how far the run got.

Example:
    summary = RestoreReconciler(library).restore(payload, reuse_existing=True)
    print(summary.to_dict())
    # {'likedRestored': 3, 'createdPlaylists': 1, 'reusedPlaylists': 0, 'tracksAdded': 2}
"""

from typing import Any

from audio_vault.backup.models import BackupPayload, RestoreSummary, playlist_signature
from audio_vault.core.logger import get_logger
from audio_vault.core.progress import ProgressObserver, RestoreCounts
from audio_vault.spotify.client import BatchProgress
from audio_vault.spotify.library import LibraryApi
from audio_vault.spotify.models import PlaylistSummary


logger = get_logger(__name__)


class RestoreReconciler:
    """
    Replays backup payloads through the library endpoints.

    Attributes:
        library: Endpoint layer bound to an authenticated client.
    """

    def __init__(self, library: LibraryApi) -> None:
        self.library = library

    def restore(
        self,
        payload: BackupPayload | dict[str, Any],
        reuse_existing: bool = True,
        observer: ProgressObserver | None = None,
    ) -> RestoreSummary:
        """
        Replay a payload.

        Args:
            payload: Decoded payload, or its dict form (validated first).
            reuse_existing: Map payload playlists onto existing own
                            playlists with the same signature.
            observer: Receives status, percentage and count events.

        Returns:
            RestoreSummary with the four counters.

        Raises:
            MalformedPayload: Before any remote call, if the payload is invalid.
            Any engine error of the underlying calls, unchanged.
        """
        if not isinstance(payload, BackupPayload):
            payload = BackupPayload.from_dict(payload)

        observer = observer or ProgressObserver()

        user = self.library.current_user()
        liked_total = len(payload.liked_tracks)
        playlists_total = len(payload.playlists)
        liked_done = 0
        playlists_done = 0

        def emit_counts() -> None:
            counts = RestoreCounts(
                liked_done=liked_done,
                liked_total=liked_total,
                playlists_done=playlists_done,
                playlists_total=playlists_total,
            )
            observer.counts(counts)
            observer.percent(counts.fraction * 100)

        emit_counts()

        observer.status("Restoring liked songs...")

        def on_liked(progress: BatchProgress) -> None:
            nonlocal liked_done
            liked_done = progress.completed
            emit_counts()

        self.library.save_liked_tracks(list(payload.liked_tracks), on_progress=on_liked)
        logger.info(f"Restored {liked_total} liked tracks")

        index: dict[tuple[str, str, bool], PlaylistSummary] = {}
        if reuse_existing:
            observer.status("Checking existing playlists for duplicates...")
            for existing in self.library.playlists():
                if existing.owner_id != user.id:
                    continue
                index.setdefault(
                    playlist_signature(existing.name, existing.description, existing.public),
                    existing,
                )

        created = 0
        reused = 0
        tracks_added = 0

        for record in payload.playlists:
            signature = record.signature
            target = index.get(signature) if reuse_existing else None

            if target is not None:
                reused += 1
                observer.status(f"Reusing playlist: {record.name}")
                logger.debug(f"Reusing playlist '{record.name}' ({target.id})")
            else:
                observer.status(f"Creating playlist: {record.name}")
                target = self.library.create_playlist(
                    user.id,
                    record.name,
                    description=record.description,
                    public=record.public,
                )
                created += 1
                if reuse_existing:
                    index[signature] = target

            if record.tracks:
                observer.status(f"Adding tracks: {record.name}")

                def on_tracks(progress: BatchProgress, name: str = record.name) -> None:
                    observer.status(f"Adding tracks: {name} ({progress.completed}/{progress.total})")

                self.library.add_tracks_to_playlist(
                    target.id, list(record.tracks), on_progress=on_tracks
                )
                tracks_added += len(record.tracks)

            playlists_done += 1
            emit_counts()

        summary = RestoreSummary(
            liked_restored=liked_total,
            created_playlists=created,
            reused_playlists=reused,
            tracks_added=tracks_added,
        )
        logger.info(
            f"Restore complete: {created} created, {reused} reused, {tracks_added} tracks added"
        )
        observer.status("Restore complete.")
        return summary
