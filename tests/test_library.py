"""Test Spotify library endpoints over a fake HTTP session"""

from unittest.mock import patch

import pytest

from audio_vault.core.exceptions import RemoteRequestFailed
from audio_vault.spotify.client import SpotifyClient
from audio_vault.spotify.library import LibraryApi


API = "https://api.spotify.com/v1"


class FakeSession:
    """Routes requests by (method, path) to queued responses and records them"""

    def __init__(self, routes, make_response):
        self.routes = {key: list(value) for key, value in routes.items()}
        self.make_response = make_response
        self.requests = []

    def request(self, method, url, headers=None, json=None, params=None, timeout=None):
        path = url[len(API):]
        self.requests.append((method, path, json, params))
        queue = self.routes.get((method, path))
        if not queue:
            return self.make_response(404, {"error": {"status": 404, "message": "no route"}})
        return queue.pop(0) if len(queue) > 1 else queue[0]


def make_library(credentials, make_response, routes):
    session = FakeSession(routes, make_response)
    return LibraryApi(SpotifyClient(credentials, session=session)), session


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("audio_vault.spotify.client.time.sleep"):
        yield


class TestReads:
    """Test listing endpoints"""

    def test_current_user(self, credentials, make_response):
        library, _ = make_library(credentials, make_response, {
            ("GET", "/me"): [make_response(200, {"id": "wizzler", "display_name": "Wiz"})],
        })
        me = library.current_user()
        assert me.id == "wizzler"
        assert me.display_name == "Wiz"
        assert me.country == ""

    def test_liked_tracks_pages(self, credentials, make_response):
        """Test liked tracks follow pages and skip items without a track"""
        library, session = make_library(credentials, make_response, {
            ("GET", "/me/tracks"): [
                make_response(200, {
                    "items": [{"track": {"id": "a"}}, {"track": None}],
                    "next": "more",
                }),
                make_response(200, {"items": [{"track": {"id": "b"}}], "next": None}),
            ],
        })

        assert library.liked_tracks() == ["a", "b"]
        assert [r[3] for r in session.requests] == [
            {"limit": 50, "offset": 0},
            {"limit": 50, "offset": 50},
        ]

    def test_playlists(self, credentials, make_response):
        library, _ = make_library(credentials, make_response, {
            ("GET", "/me/playlists"): [make_response(200, {
                "items": [
                    {"id": "p1", "name": "Mine", "public": None, "owner": {"id": "me"},
                     "tracks": {"total": 3}},
                    {"name": "no id"},
                ],
                "next": None,
            })],
        })

        playlists = library.playlists()
        assert len(playlists) == 1
        assert playlists[0].public is False
        assert playlists[0].owner_id == "me"
        assert playlists[0].total_tracks == 3

    def test_playlist_tracks_primary(self, credentials, make_response):
        """Test placeholders keep positions for local and removed tracks"""
        library, _ = make_library(credentials, make_response, {
            ("GET", "/playlists/p1/tracks"): [make_response(200, {
                "items": [
                    {"track": {"id": "t1", "name": "One", "artists": [{"name": "A"}]}},
                    {"is_local": True, "track": {"id": None, "name": "Local song"}},
                    {"track": None},
                    {"track": {"id": "e1", "type": "episode"}},
                ],
                "next": None,
            })],
        })

        tracks = library.playlist_tracks("p1")
        assert [t.id for t in tracks] == ["t1", None, None, None]
        assert [t.available for t in tracks] == [True, False, False, False]
        assert tracks[0].artists == ("A",)
        assert tracks[1].name == "Local song"

    def test_playlist_tracks_fallback_on_forbidden(self, credentials, make_response):
        """Test a forbidden /tracks listing falls back to /items"""
        library, session = make_library(credentials, make_response, {
            ("GET", "/playlists/p1/tracks"): [make_response(403, {"error": "forbidden"})],
            ("GET", "/playlists/p1/items"): [make_response(200, {
                "items": [{"item": {"id": "t1"}}, {"track": {"id": "t2"}}, "junk"],
                "next": None,
            })],
        })

        tracks = library.playlist_tracks("p1")
        assert [t.id for t in tracks] == ["t1", "t2", None]
        assert [r[1] for r in session.requests] == ["/playlists/p1/tracks", "/playlists/p1/items"]

    def test_playlist_tracks_forbidden_everywhere(self, credentials, make_response):
        library, _ = make_library(credentials, make_response, {
            ("GET", "/playlists/p1/tracks"): [make_response(403, {})],
            ("GET", "/playlists/p1/items"): [make_response(403, {})],
        })
        with pytest.raises(RemoteRequestFailed) as exc_info:
            library.playlist_tracks("p1")
        assert exc_info.value.is_forbidden

    def test_saved_albums(self, credentials, make_response):
        library, _ = make_library(credentials, make_response, {
            ("GET", "/me/albums"): [make_response(200, {
                "items": [{"album": {"id": "al1"}}, {"album": None}],
                "next": None,
            })],
        })
        assert library.saved_albums() == ["al1"]

    def test_followed_artists_cursor(self, credentials, make_response):
        library, session = make_library(credentials, make_response, {
            ("GET", "/me/following"): [
                make_response(200, {"artists": {
                    "items": [{"id": "ar1"}], "next": "more", "cursors": {"after": "ar1"},
                }}),
                make_response(200, {"artists": {
                    "items": [{"id": "ar2"}], "next": None, "cursors": {},
                }}),
            ],
        })

        assert library.followed_artists() == ["ar1", "ar2"]
        assert session.requests[1][3]["after"] == "ar1"
        assert session.requests[0][3]["type"] == "artist"


class TestWrites:
    """Test mutation endpoints"""

    def test_save_liked_tracks_batches(self, credentials, make_response):
        library, session = make_library(credentials, make_response, {
            ("PUT", "/me/tracks"): [make_response(200, text="")],
        })
        ids = [f"t{i}" for i in range(120)]

        assert library.save_liked_tracks(ids) == 120
        bodies = [r[2]["ids"] for r in session.requests]
        assert [len(b) for b in bodies] == [50, 50, 20]
        assert sum(bodies, []) == ids

    def test_add_tracks_uses_uris(self, credentials, make_response):
        library, session = make_library(credentials, make_response, {
            ("POST", "/playlists/p1/tracks"): [make_response(201, {"snapshot_id": "s"})],
        })
        ids = [f"t{i}" for i in range(101)]

        assert library.add_tracks_to_playlist("p1", ids) == 101
        first = session.requests[0][2]["uris"]
        assert len(first) == 100
        assert first[0] == "spotify:track:t0"
        assert len(session.requests) == 2

    def test_create_playlist(self, credentials, make_response):
        library, session = make_library(credentials, make_response, {
            ("POST", "/users/me/playlists"): [make_response(201, {
                "id": "new1", "name": "Road Trip", "description": None, "public": None,
                "owner": {"id": "me"},
            })],
        })

        created = library.create_playlist("me", "Road Trip", description="", public=True)
        assert created.id == "new1"
        assert created.public is True
        assert created.owner_id == "me"
        assert session.requests[0][2] == {"name": "Road Trip", "description": "", "public": True}
