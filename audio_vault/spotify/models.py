"""
Data models for Spotify entities.

This module defines immutable dataclasses for the remote objects the
engine reads: the current account, tracks, and playlist summaries.

Design Decisions:
    - All dataclasses are frozen (immutable) to prevent accidental modification
    - Factories accept raw API dicts and raise KeyError/TypeError on items
      that lack required fields; the pagination helper treats those as
      skippable records
    - Playlist track listings never drop positions: an item that cannot
      be read becomes a placeholder TrackRef (id None, available False)

Usage:
    from audio_vault.spotify.models import TrackRef, PlaylistSummary

    track = TrackRef.from_spotify_api(item["track"])
    if track.available:
        ids.append(track.id)
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class AccountIdentity:
    """
    The account the credential belongs to (response of GET /me).

    Attributes:
        id: Spotify user id. Example: "wizzler"
        display_name: Public display name, "" when unset.
        country: ISO 3166-1 alpha-2 country code, "" when the scope
                 does not expose it.
    """
    id: str
    display_name: str = ""
    country: str = ""

    @classmethod
    def from_spotify_api(cls, data: dict[str, Any]) -> "AccountIdentity":
        return cls(
            id=data["id"],
            display_name=data.get("display_name") or "",
            country=data.get("country") or "",
        )


@dataclass(frozen=True)
class TrackRef:
    """
    Minimal reference to a track inside a listing.

    Attributes:
        id: Spotify track id, or None for a placeholder.
        name: Track title ("" for placeholders).
        artists: Artist names in credit order.
        available: False for placeholders (local files, removed tracks,
                   episodes, or items the API returned without a track).

    Example:
        TrackRef.placeholder()  # TrackRef(id=None, name='', artists=(), available=False)
    """
    id: str | None
    name: str = ""
    artists: tuple[str, ...] = ()
    available: bool = True

    @classmethod
    def placeholder(cls, name: str = "") -> "TrackRef":
        return cls(id=None, name=name, artists=(), available=False)

    @classmethod
    def from_spotify_api(cls, track_data: dict[str, Any] | None) -> "TrackRef":
        """
        Create a TrackRef from a track object.

        Never raises: any shape that does not carry a usable track id
        produces a placeholder.
        """
        if not isinstance(track_data, dict):
            return cls.placeholder()

        name = track_data.get("name") or ""
        track_id = track_data.get("id")

        if (
            not isinstance(track_id, str)
            or not track_id
            or track_data.get("is_local")
            or track_data.get("type", "track") != "track"
        ):
            return cls.placeholder(name if isinstance(name, str) else "")

        artists = tuple(
            a["name"] for a in track_data.get("artists") or []
            if isinstance(a, dict) and isinstance(a.get("name"), str)
        )
        return cls(id=track_id, name=name, artists=artists, available=True)


@dataclass(frozen=True)
class PlaylistSummary:
    """
    A playlist as returned by GET /me/playlists (without its tracks).

    Attributes:
        id: Spotify playlist id.
        name: Playlist name.
        description: Playlist description, "" when unset.
        public: Visibility flag. Spotify reports null for some playlists;
                that is stored as False.
        collaborative: Whether other users can edit the playlist.
        owner_id: User id of the owner.
        total_tracks: Track count reported by the listing.
        snapshot_id: Version identifier of the playlist contents.
    """
    id: str
    name: str
    description: str = ""
    public: bool = False
    collaborative: bool = False
    owner_id: str = ""
    total_tracks: int = 0
    snapshot_id: str = ""

    @classmethod
    def from_spotify_api(cls, data: dict[str, Any]) -> "PlaylistSummary":
        owner = data.get("owner") or {}
        tracks = data.get("tracks") or data.get("items") or {}
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description") or "",
            public=bool(data.get("public")),
            collaborative=bool(data.get("collaborative")),
            owner_id=owner.get("id") or "",
            total_tracks=int(tracks.get("total") or 0) if isinstance(tracks, dict) else 0,
            snapshot_id=data.get("snapshot_id") or "",
        )
