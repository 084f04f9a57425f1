"""Tests for FileScanner: the single-file skip/new/changed sync into the catalog."""

import os
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import func, select

from trackvault.core.config import settings
from trackvault.core.models import Album, Artist, Folder, Song
from trackvault.core.scanner_config import ScanConfiguration
from trackvault.worker.artwork import AlbumCoverWriter
from trackvault.worker.covers import CoverResolver
from trackvault.worker.media_browser import LocalStorage, MediaBrowser
from trackvault.worker.resolver import EntityResolver
from trackvault.worker.scanner import INVALID_FILE, FileScanner, SongNotBoundError


@pytest.fixture
def artwork_dir(tmp_path):
    return tmp_path / "artwork"


@pytest.fixture
def make_scanner(repository, extractor, scan_cache, artwork_dir):
    """Build a FileScanner wired to the test database and the fake extractor."""

    def _make(repo=None, storage=None, media_browser=None):
        repo = repo or repository
        return FileScanner(
            repo,
            extractor=extractor,
            resolver=EntityResolver(repo, scan_cache),
            cover_resolver=CoverResolver(scan_cache),
            cover_writer=AlbumCoverWriter(repo, artwork_dir),
            storage=storage or LocalStorage(None),
            media_browser=media_browser,
        )

    return _make


@pytest.fixture
def config(owner):
    return ScanConfiguration(owner=owner)


def count(session, model):
    return session.execute(select(func.count()).select_from(model)).scalar_one()


def snapshot(song: Song) -> dict:
    fields = (
        "title", "track", "disc", "year", "genre", "lyrics", "length", "mtime",
        "artist_id", "album_id", "owner_id", "is_public",
    )
    return {name: getattr(song, name) for name in fields}


# ========== New files ==========


def test_new_file_creates_artist_album_and_song(make_scanner, extractor, make_audio, media_dir, config, db_session):
    path = make_audio(media_dir / "01 Black Dog.mp3")
    extractor.set(path, title="Black Dog", artist="Led Zeppelin", album="IV", track=1)

    scanner = make_scanner().set_file(path)
    assert scanner.is_file_new()

    result = scanner.scan(config)

    assert result.is_success
    assert result.path == os.path.realpath(path)
    assert count(db_session, Artist) == 1
    assert count(db_session, Album) == 1
    assert count(db_session, Song) == 1

    artist = db_session.execute(select(Artist)).scalar_one()
    album = db_session.execute(select(Album)).scalar_one()
    song = scanner.get_song()
    assert artist.name == "Led Zeppelin"
    assert album.name == "IV"
    assert album.artist_id == artist.id
    assert song.artist_id == artist.id
    assert song.album_id == album.id
    assert song.track == 1
    assert song.title == "Black Dog"
    assert song.path == os.path.realpath(path)


def test_new_file_is_owned_by_config_owner_forever(
    make_scanner, extractor, make_audio, media_dir, owner, other_owner, db_session
):
    path = make_audio(media_dir / "track.mp3")
    extractor.set(path, artist="Led Zeppelin", album="IV")

    make_scanner().set_file(path).scan(ScanConfiguration(owner=owner))
    song = db_session.execute(select(Song)).scalar_one()
    assert song.owner_id == owner.id

    result = make_scanner().set_file(path).scan(ScanConfiguration(owner=other_owner, force=True))

    assert result.is_success
    db_session.refresh(song)
    assert song.owner_id == owner.id


def test_new_file_without_names_uses_sentinels(make_scanner, extractor, make_audio, media_dir, config, db_session):
    path = make_audio(media_dir / "Untitled Demo.mp3")
    extractor.set(path)

    scanner = make_scanner().set_file(path)
    assert scanner.scan(config).is_success

    song = scanner.get_song()
    assert song.title == "Untitled Demo"
    assert song.artist.name == Artist.UNKNOWN_NAME
    assert song.album.name == Album.UNKNOWN_NAME


def test_album_artist_owns_the_album(make_scanner, extractor, make_audio, media_dir, config, db_session):
    path = make_audio(media_dir / "mix.mp3")
    extractor.set(path, artist="Daft Punk", albumartist="Various Artists", album="Mix")

    scanner = make_scanner().set_file(path)
    assert scanner.scan(config).is_success

    song = scanner.get_song()
    assert song.artist.name == "Daft Punk"
    assert song.album.artist.name == "Various Artists"
    assert count(db_session, Artist) == 2


def test_sidecar_lyrics_used_when_not_embedded(make_scanner, extractor, make_audio, media_dir, config):
    path = make_audio(media_dir / "song.mp3")
    (media_dir / "song.lrc").write_text("[00:01.00]Hey hey mama", encoding="utf-8")
    extractor.set(path, artist="Led Zeppelin", album="IV")

    scanner = make_scanner().set_file(path)
    scanner.scan(config)

    assert scanner.get_song().lyrics == "[00:01.00]Hey hey mama"


def test_embedded_lyrics_win_over_sidecar(make_scanner, extractor, make_audio, media_dir, config):
    path = make_audio(media_dir / "song.mp3")
    (media_dir / "song.lrc").write_text("from sidecar", encoding="utf-8")
    extractor.set(path, artist="Led Zeppelin", album="IV", lyrics="embedded")

    scanner = make_scanner().set_file(path)
    scanner.scan(config)

    assert scanner.get_song().lyrics == "embedded"


# ========== Skipping and change detection ==========


def test_unchanged_file_is_skipped_without_store_writes(
    make_scanner, extractor, make_audio, media_dir, config, repository
):
    path = make_audio(media_dir / "track.mp3", mtime=1_600_000_000)
    extractor.set(path, artist="Led Zeppelin", album="IV")
    assert make_scanner().set_file(path).scan(config).is_success
    calls_before = extractor.calls

    spy = MagicMock(wraps=repository)
    scanner = make_scanner(repo=spy).set_file(path)

    assert not scanner.is_file_new()
    assert not scanner.is_file_changed()
    result = scanner.scan(config)

    assert result.is_skipped
    assert extractor.calls == calls_before
    spy.upsert_song.assert_not_called()
    spy.get_or_create_artist.assert_not_called()
    spy.get_or_create_album.assert_not_called()
    spy.set_album_year_if_missing.assert_not_called()
    spy.set_album_cover.assert_not_called()


def test_changed_file_is_never_skipped(make_scanner, extractor, make_audio, media_dir, config):
    path = make_audio(media_dir / "track.mp3", mtime=1_600_000_000)
    extractor.set(path, artist="Led Zeppelin", album="IV", title="Old")
    make_scanner().set_file(path).scan(config)

    os.utime(path, (1_700_000_000, 1_700_000_000))
    extractor.set(path, artist="Led Zeppelin", album="IV", title="New")
    scanner = make_scanner().set_file(path)

    assert scanner.is_file_changed()
    assert scanner.is_file_new_or_changed()
    result = scanner.scan(config)

    assert result.is_success
    assert scanner.get_song().title == "New"
    assert scanner.get_song().mtime == 1_700_000_000


def test_changed_file_that_fails_extraction_is_an_error(make_scanner, extractor, make_audio, media_dir, config):
    path = make_audio(media_dir / "track.mp3", mtime=1_600_000_000)
    extractor.set(path, artist="Led Zeppelin", album="IV")
    make_scanner().set_file(path).scan(config)

    os.utime(path, (1_700_000_000, 1_700_000_000))
    extractor.fail(path, "can't sync to MPEG frame")
    result = make_scanner().set_file(path).scan(config)

    assert result.is_error
    assert result.error == "can't sync to MPEG frame"


def test_forced_rescan_is_idempotent(make_scanner, extractor, make_audio, media_dir, config):
    path = make_audio(media_dir / "track.mp3")
    extractor.set(path, artist="Led Zeppelin", album="IV", track=4, disc=1, year=1971, genre="Rock")
    forced = ScanConfiguration(owner=config.owner, force=True)

    first = make_scanner().set_file(path)
    assert first.scan(forced).is_success
    before = snapshot(first.get_song())

    second = make_scanner().set_file(path)
    assert second.scan(forced).is_success
    after = snapshot(second.get_song())

    assert before == after


# ========== Extraction failures ==========


def test_empty_file_is_reported(make_scanner, extractor, make_audio, media_dir, config, db_session):
    path = make_audio(media_dir / "broken.mp3")
    extractor.fail(path, "Empty file")

    scanner = make_scanner().set_file(path)
    result = scanner.scan(config)

    assert result.is_error
    assert result.error == "Empty file"
    assert scanner.sync_error == "Empty file"
    assert count(db_session, Song) == 0
    with pytest.raises(SongNotBoundError):
        scanner.get_song()


def test_unexpected_failure_becomes_invalid_file(make_scanner, extractor, make_audio, media_dir, config, repository):
    path = make_audio(media_dir / "track.mp3")
    extractor.set(path, artist="Led Zeppelin", album="IV")

    with patch.object(repository, "upsert_song", side_effect=RuntimeError("database is locked")):
        result = make_scanner().set_file(path).scan(config)

    assert result.is_error
    assert result.error == INVALID_FILE


def test_unbound_scanner_raises():
    scanner = FileScanner(MagicMock())
    with pytest.raises(SongNotBoundError):
        scanner.get_song()
    with pytest.raises(SongNotBoundError):
        scanner.scan(MagicMock())


def test_media_browser_built_for_any_repository(monkeypatch, media_dir):
    monkeypatch.setattr(settings, "MEDIA_PATH", media_dir)
    repository = MagicMock()

    scanner = FileScanner(repository)

    assert isinstance(scanner.media_browser, MediaBrowser)
    assert scanner.media_browser.repository is repository


# ========== Ignored fields ==========


def test_ignored_genre_is_kept_on_rescan(make_scanner, extractor, make_audio, media_dir, owner):
    path = make_audio(media_dir / "track.mp3", mtime=1_600_000_000)
    extractor.set(path, artist="Led Zeppelin", album="IV", genre="Rock", title="Black Dog")
    make_scanner().set_file(path).scan(ScanConfiguration(owner=owner))

    os.utime(path, (1_700_000_000, 1_700_000_000))
    extractor.set(path, artist="Led Zeppelin", album="IV", genre="Pop", title="Black Dog (Remaster)")
    scanner = make_scanner().set_file(path)
    result = scanner.scan(ScanConfiguration(owner=owner, ignored_fields={"genre"}))

    assert result.is_success
    assert scanner.get_song().genre == "Rock"
    assert scanner.get_song().title == "Black Dog (Remaster)"


def test_ignored_fields_do_not_apply_to_new_files(make_scanner, extractor, make_audio, media_dir, owner):
    path = make_audio(media_dir / "track.mp3")
    extractor.set(path, artist="Led Zeppelin", album="IV", genre="Rock")

    scanner = make_scanner().set_file(path)
    scanner.scan(ScanConfiguration(owner=owner, ignored_fields={"genre"}))

    assert scanner.get_song().genre == "Rock"


def test_existing_song_keeps_artist_when_tag_disappears(make_scanner, extractor, make_audio, media_dir, config):
    path = make_audio(media_dir / "track.mp3", mtime=1_600_000_000)
    extractor.set(path, artist="Led Zeppelin", album="IV")
    first = make_scanner().set_file(path)
    first.scan(config)
    artist_id, album_id = first.get_song().artist_id, first.get_song().album_id

    os.utime(path, (1_700_000_000, 1_700_000_000))
    extractor.set(path, title="Black Dog")
    second = make_scanner().set_file(path)
    assert second.scan(config).is_success

    assert second.get_song().artist_id == artist_id
    assert second.get_song().album_id == album_id


# ========== Album cover and year ==========


def test_folder_cover_is_used_for_album(make_scanner, extractor, make_audio, make_image, media_dir, config, artwork_dir, repository):
    path = make_audio(media_dir / "track.mp3")
    cover_file = make_image(media_dir / "folder.jpg")
    extractor.set(path, artist="Led Zeppelin", album="IV")

    scanner = make_scanner().set_file(path)
    assert scanner.scan(config).is_success

    album = repository.get_album(scanner.get_song().album_id)
    assert album.cover is not None
    assert album.cover.endswith(".jpg")
    assert (artwork_dir / album.cover).read_bytes() == cover_file.read_bytes()


def test_embedded_cover_wins_over_folder_cover(
    make_scanner, extractor, make_audio, make_image, image_bytes, media_dir, config, artwork_dir, repository
):
    path = make_audio(media_dir / "track.mp3")
    make_image(media_dir / "cover.jpg")
    extractor.set(path, artist="Led Zeppelin", album="IV", cover={"data": image_bytes, "mime": "image/png"})

    scanner = make_scanner().set_file(path)
    scanner.scan(config)

    album = repository.get_album(scanner.get_song().album_id)
    assert album.cover.endswith(".png")
    assert (artwork_dir / album.cover).read_bytes() == image_bytes


def test_cover_not_generated_when_ignored(make_scanner, extractor, make_audio, make_image, media_dir, owner, repository):
    path = make_audio(media_dir / "track.mp3")
    make_image(media_dir / "folder.jpg")
    extractor.set(path, artist="Led Zeppelin", album="IV")

    scanner = make_scanner().set_file(path)
    scanner.scan(ScanConfiguration(owner=owner, ignored_fields={"cover"}))

    assert repository.get_album(scanner.get_song().album_id).cover is None


def test_broken_cover_does_not_fail_the_scan(make_scanner, extractor, make_audio, media_dir, config, repository):
    path = make_audio(media_dir / "track.mp3")
    extractor.set(path, artist="Led Zeppelin", album="IV", cover={"data": b"not an image", "mime": "image/jpeg"})

    scanner = make_scanner().set_file(path)
    result = scanner.scan(config)

    assert result.is_success
    assert repository.get_album(scanner.get_song().album_id).cover is None


def test_album_year_is_set_by_first_song_only(make_scanner, extractor, make_audio, media_dir, config, repository):
    first = make_audio(media_dir / "01.mp3")
    second = make_audio(media_dir / "02.mp3")
    extractor.set(first, artist="Led Zeppelin", album="IV", year=1971)
    extractor.set(second, artist="Led Zeppelin", album="IV", year=1975)

    a = make_scanner().set_file(first)
    a.scan(config)
    b = make_scanner().set_file(second)
    b.scan(config)

    assert a.get_song().album_id == b.get_song().album_id
    assert repository.get_album(a.get_song().album_id).year == 1971
    assert b.get_song().year == 1975


# ========== Entity resolution ==========


def test_shared_artist_is_resolved_once(make_scanner, extractor, make_audio, media_dir, config, repository):
    spy = MagicMock(wraps=repository)
    paths = [make_audio(media_dir / f"{n:02d}.mp3") for n in range(1, 5)]
    for path in paths:
        extractor.set(path, artist="Led Zeppelin ", album="IV")

    for path in paths:
        assert make_scanner(repo=spy).set_file(path).scan(config).is_success

    assert spy.get_or_create_artist.call_count == 1
    assert spy.get_or_create_album.call_count == 1
    assert spy.upsert_song.call_count == 4


# ========== Folder structure ==========


def test_folder_structure_is_created_below_media_root(
    make_scanner, extractor, make_audio, media_dir, config, repository, db_session
):
    path = make_audio(media_dir / "Led Zeppelin" / "IV" / "01.mp3")
    extractor.set(path, artist="Led Zeppelin", album="IV")
    scanner = make_scanner(
        storage=LocalStorage(media_dir),
        media_browser=MediaBrowser(repository, media_dir),
    ).set_file(path)

    assert scanner.scan(config).is_success

    album_dir = os.path.realpath(media_dir / "Led Zeppelin" / "IV")
    folder = db_session.execute(select(Folder).where(Folder.path == album_dir)).scalar_one()
    assert scanner.get_song().folder_id == folder.id
    assert count(db_session, Folder) == 3


def test_folder_structure_disabled_by_config(make_scanner, extractor, make_audio, media_dir, owner, repository, db_session):
    path = make_audio(media_dir / "Led Zeppelin" / "01.mp3")
    extractor.set(path, artist="Led Zeppelin", album="IV")
    scanner = make_scanner(
        storage=LocalStorage(media_dir),
        media_browser=MediaBrowser(repository, media_dir),
    ).set_file(path)

    scanner.scan(ScanConfiguration(owner=owner, extract_folder_structure=False))

    assert scanner.get_song().folder_id is None
    assert count(db_session, Folder) == 0
