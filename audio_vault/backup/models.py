"""
Data models for backup payloads.

A BackupPayload is the portable, provider-neutral description of a
library. It is built once per export, never mutated, and serialized to
JSON with camelCase keys:

    {
      "version": 1,
      "createdAt": "2024-05-01T12:00:00+00:00",
      "source": "spotify",
      "account": {"id": "...", "displayName": "...", "country": "IT"},
      "summary": {"likedSongs": 3, "playlists": 1, ...},
      "likedTracks": ["4cOdK2wGLETKBW3PvgPWqT", ...],
      "savedAlbums": [...],
      "followedArtists": [...],
      "playlists": [
        {"id": "...", "name": "Road Trip", "description": "", "public": false,
         "collaborative": false, "ownerId": "...", "tracks": ["...", ...],
         "unavailableTracks": 0}
      ]
    }

Decoding:
    BackupPayload.from_dict() is the single validation step. It fails
    fast with MalformedPayload, naming the offending field, when:
        - the payload is not an object
        - likedTracks is missing or not a list of strings
        - playlists is missing or not a list of objects with a string name
        - any optional field is present with the wrong type
    "summary" is derived on encode and ignored on decode.
"""

from dataclasses import dataclass, field
from typing import Any

from audio_vault.core.exceptions import MalformedPayload


PAYLOAD_VERSION = 1
DEFAULT_SOURCE = "spotify"


def _normalize_text(value: str | None) -> str:
    return (value or "").strip().lower()


def playlist_signature(name: str | None, description: str | None, public: bool | None) -> tuple[str, str, bool]:
    """
    Matching key for "the same playlist" across accounts.

    Case-insensitive, whitespace-trimmed name and description plus the
    exact visibility flag (None counts as private).

    Example:
        >>> playlist_signature("  Road Trip ", None, False)
        ('road trip', '', False)
    """
    return (_normalize_text(name), _normalize_text(description), bool(public))


@dataclass(frozen=True)
class AccountSnapshot:
    """
    Identity of the exported account.

    Attributes:
        id: Provider user id.
        display_name: Display name at export time.
        country: Country code at export time.
    """
    id: str = ""
    display_name: str = ""
    country: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "displayName": self.display_name, "country": self.country}

    @classmethod
    def from_dict(cls, data: Any) -> "AccountSnapshot":
        if not isinstance(data, dict):
            raise MalformedPayload("Backup payload account must be an object", details={"field": "account"})
        return cls(
            id=_optional_str(data, "id", "account.id"),
            display_name=_optional_str(data, "displayName", "account.displayName"),
            country=_optional_str(data, "country", "account.country"),
        )


@dataclass(frozen=True)
class PlaylistRecord:
    """
    One playlist of a backup.

    Attributes:
        id: Remote id at export time (informational; restore never uses it).
        name: Playlist name.
        description: Playlist description.
        public: Visibility flag.
        collaborative: Collaborative flag at export time.
        owner_id: Owner at export time.
        tracks: Restorable track ids, in playlist order.
        unavailable_tracks: Entries that had no restorable id (local files,
                            removed tracks, unreadable items).
    """
    name: str
    description: str = ""
    public: bool = False
    collaborative: bool = False
    owner_id: str = ""
    id: str = ""
    tracks: tuple[str, ...] = ()
    unavailable_tracks: int = 0

    @property
    def signature(self) -> tuple[str, str, bool]:
        return playlist_signature(self.name, self.description, self.public)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "public": self.public,
            "collaborative": self.collaborative,
            "ownerId": self.owner_id,
            "tracks": list(self.tracks),
            "unavailableTracks": self.unavailable_tracks,
        }

    @classmethod
    def from_dict(cls, data: Any, index: int) -> "PlaylistRecord":
        where = f"playlists[{index}]"
        if not isinstance(data, dict):
            raise MalformedPayload(f"Backup payload {where} must be an object", details={"field": where})

        name = data.get("name")
        if not isinstance(name, str):
            raise MalformedPayload(
                f"Backup payload {where} is missing a name",
                details={"field": f"{where}.name"}
            )

        tracks = data.get("tracks", [])
        if tracks is None:
            tracks = []
        _require_str_list(tracks, f"{where}.tracks")

        unavailable = data.get("unavailableTracks", 0)
        if not isinstance(unavailable, int) or isinstance(unavailable, bool) or unavailable < 0:
            raise MalformedPayload(
                f"Backup payload {where}.unavailableTracks must be a non-negative integer",
                details={"field": f"{where}.unavailableTracks"}
            )

        return cls(
            id=_optional_str(data, "id", f"{where}.id"),
            name=name,
            description=_optional_str(data, "description", f"{where}.description"),
            public=_optional_bool(data, "public", f"{where}.public"),
            collaborative=_optional_bool(data, "collaborative", f"{where}.collaborative"),
            owner_id=_optional_str(data, "ownerId", f"{where}.ownerId"),
            tracks=tuple(tracks),
            unavailable_tracks=unavailable,
        )


@dataclass(frozen=True)
class BackupPayload:
    """
    A complete library backup.

    Attributes:
        liked_tracks: Liked track ids.
        playlists: Playlist records, in the order restore replays them.
        saved_albums: Saved album ids.
        followed_artists: Followed artist ids.
        account: Exported account, if known.
        created_at: ISO-8601 creation timestamp.
        source: Provider name.
        version: Schema version.

    Example:
        payload = BackupPayload.from_dict(json.loads(text))
        print(f"{len(payload.liked_tracks)} liked tracks")
    """
    liked_tracks: tuple[str, ...] = ()
    playlists: tuple[PlaylistRecord, ...] = ()
    saved_albums: tuple[str, ...] = ()
    followed_artists: tuple[str, ...] = ()
    account: AccountSnapshot = field(default_factory=AccountSnapshot)
    created_at: str = ""
    source: str = DEFAULT_SOURCE
    version: int = PAYLOAD_VERSION

    @property
    def summary(self) -> dict[str, int]:
        return {
            "likedSongs": len(self.liked_tracks),
            "playlists": len(self.playlists),
            "playlistTracks": sum(len(p.tracks) for p in self.playlists),
            "savedAlbums": len(self.saved_albums),
            "followedArtists": len(self.followed_artists),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "createdAt": self.created_at,
            "source": self.source,
            "account": self.account.to_dict(),
            "summary": self.summary,
            "likedTracks": list(self.liked_tracks),
            "savedAlbums": list(self.saved_albums),
            "followedArtists": list(self.followed_artists),
            "playlists": [p.to_dict() for p in self.playlists],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "BackupPayload":
        """
        Decode and validate a payload object.

        Raises:
            MalformedPayload: On any missing required field or wrong type.
        """
        if not isinstance(data, dict):
            raise MalformedPayload("Invalid backup payload: not a JSON object")

        if "likedTracks" not in data:
            raise MalformedPayload("Backup payload missing likedTracks", details={"field": "likedTracks"})
        _require_str_list(data["likedTracks"], "likedTracks")

        if "playlists" not in data:
            raise MalformedPayload("Backup payload missing playlists", details={"field": "playlists"})
        raw_playlists = data["playlists"]
        if not isinstance(raw_playlists, list):
            raise MalformedPayload("Backup payload playlists must be a list", details={"field": "playlists"})

        for key in ("savedAlbums", "followedArtists"):
            if data.get(key) is not None:
                _require_str_list(data[key], key)

        version = data.get("version", PAYLOAD_VERSION)
        if not isinstance(version, int) or isinstance(version, bool):
            raise MalformedPayload("Backup payload version must be an integer", details={"field": "version"})

        account = data.get("account")
        source = data.get("source")

        return cls(
            liked_tracks=tuple(data["likedTracks"]),
            playlists=tuple(PlaylistRecord.from_dict(p, i) for i, p in enumerate(raw_playlists)),
            saved_albums=tuple(data.get("savedAlbums") or ()),
            followed_artists=tuple(data.get("followedArtists") or ()),
            account=AccountSnapshot.from_dict(account) if account is not None else AccountSnapshot(),
            created_at=_optional_str(data, "createdAt", "createdAt"),
            source=DEFAULT_SOURCE if source is None else _optional_str(data, "source", "source"),
            version=version,
        )


@dataclass(frozen=True)
class RestoreSummary:
    """
    Counters accumulated by a restore run.

    Attributes:
        liked_restored: Liked track ids written.
        created_playlists: Playlists created.
        reused_playlists: Payload playlists mapped onto an existing playlist.
        tracks_added: Track ids written into playlists.
    """
    liked_restored: int = 0
    created_playlists: int = 0
    reused_playlists: int = 0
    tracks_added: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "likedRestored": self.liked_restored,
            "createdPlaylists": self.created_playlists,
            "reusedPlaylists": self.reused_playlists,
            "tracksAdded": self.tracks_added,
        }


def _require_str_list(value: Any, field_name: str) -> None:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise MalformedPayload(
            f"Backup payload {field_name} must be a list of strings",
            details={"field": field_name}
        )


def _optional_str(data: dict[str, Any], key: str, field_name: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise MalformedPayload(f"Backup payload {field_name} must be a string", details={"field": field_name})
    return value


def _optional_bool(data: dict[str, Any], key: str, field_name: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise MalformedPayload(f"Backup payload {field_name} must be a boolean", details={"field": field_name})
    return value
