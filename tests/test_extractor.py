from __future__ import annotations

import calendar
import hashlib
import io
import tarfile
import zipfile
import zlib
from pathlib import Path

import pytest

from artifactdiff.extractor import (
    ArchiveContentVerifier,
    ArtifactFormatError,
    ArtifactPathError,
    DirectoryArtifactHandler,
    Fingerprinter,
    TarArtifactHandler,
    ZipArtifactHandler,
    extract_snapshot,
    handler_for,
    validate_artifact_path,
)
from artifactdiff.models import Entry, FingerprintMode


def _sha256(data: bytes) -> str:
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def test_extract_zip_strong_fingerprints(make_zip) -> None:
    archive = make_zip(
        "plugin.jar",
        {
            "META-INF/": None,
            "META-INF/MANIFEST.MF": b"Manifest-Version: 1.0\n",
            "com/example/Main.class": b"\xca\xfe\xba\xbe",
        },
    )

    snapshot = extract_snapshot(archive)

    assert snapshot.label == "plugin.jar"
    assert [entry.path for entry in snapshot.entries] == [
        "META-INF",
        "META-INF/MANIFEST.MF",
        "com/example/Main.class",
    ]
    directory, manifest, main_class = snapshot.entries
    assert directory.is_directory
    assert directory.fingerprint is None
    assert manifest.fingerprint == _sha256(b"Manifest-Version: 1.0\n")
    assert main_class.size == 4
    expected_millis = calendar.timegm((2024, 1, 2, 3, 4, 6, 0, 0, 0)) * 1000
    assert main_class.modified_time == expected_millis


def test_extract_zip_weak_fingerprints(make_zip) -> None:
    archive = make_zip("plugin.zip", {"a.txt": b"hello"})

    snapshot = extract_snapshot(archive, mode=FingerprintMode.WEAK)

    (entry,) = snapshot.entries
    assert entry.fingerprint == f"crc32:{zlib.crc32(b'hello'):08x}:5"


def test_extract_tar_matches_zip_fingerprints(make_zip, make_tar) -> None:
    members = {"lib/": None, "lib/a.txt": b"alpha", "lib/b.txt": b"beta"}
    zip_snapshot = extract_snapshot(make_zip("a.zip", members), mode=FingerprintMode.WEAK)
    tar_snapshot = extract_snapshot(make_tar("a.tar.gz", members), mode=FingerprintMode.WEAK)

    assert [(e.path, e.fingerprint) for e in tar_snapshot.entries] == [
        (e.path, e.fingerprint) for e in zip_snapshot.entries
    ]
    assert tar_snapshot.entries[1].modified_time == 1_700_000_000_000


def test_extract_directory(tmp_path: Path) -> None:
    root = tmp_path / "unpacked"
    (root / "lib").mkdir(parents=True)
    (root / "lib" / "a.txt").write_bytes(b"alpha")
    (root / "readme.md").write_bytes(b"docs")

    snapshot = extract_snapshot(root, hash_algorithm="md5")

    by_path = {entry.path: entry for entry in snapshot.entries}
    assert set(by_path) == {"lib", "lib/a.txt", "readme.md"}
    assert by_path["lib"].is_directory
    assert by_path["lib/a.txt"].fingerprint == f"md5:{hashlib.md5(b'alpha').hexdigest()}"


def test_extract_missing_path_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        extract_snapshot(tmp_path / "missing.jar")


def test_extract_unsupported_file_raises(tmp_path: Path) -> None:
    bogus = tmp_path / "bogus.jar"
    bogus.write_text("not an archive")

    with pytest.raises(ArtifactFormatError):
        extract_snapshot(bogus)


def test_handler_for_dispatches(make_zip, make_tar, tmp_path: Path) -> None:
    assert isinstance(handler_for(make_zip("a.zip", {"x": b"1"})), ZipArtifactHandler)
    assert isinstance(handler_for(make_tar("a.tgz", {"x": b"1"})), TarArtifactHandler)
    assert isinstance(handler_for(tmp_path), DirectoryArtifactHandler)


def test_fingerprinter_rejects_unknown_algorithm() -> None:
    with pytest.raises(ValueError):
        Fingerprinter(FingerprintMode.STRONG, "not-a-digest")


def test_validate_artifact_path(tmp_path: Path) -> None:
    artifact = tmp_path / "plugin.JAR"
    artifact.write_bytes(b"")

    assert validate_artifact_path(artifact, ["jar", "zip"]) == artifact

    with pytest.raises(ArtifactPathError, match="File not found"):
        validate_artifact_path(tmp_path / "missing.jar", ["jar"])
    with pytest.raises(ArtifactPathError, match="not a file"):
        validate_artifact_path(tmp_path, ["jar"])
    with pytest.raises(ArtifactPathError, match="Unsupported file type"):
        validate_artifact_path(artifact, [".json"])


def test_validate_artifact_path_multi_part_extensions_and_directories(tmp_path: Path) -> None:
    bundle = tmp_path / "bundle.TAR.GZ"
    bundle.write_bytes(b"")

    assert validate_artifact_path(bundle, ["jar", "tar.gz"]) == bundle
    assert validate_artifact_path(bundle, ["gz"]) == bundle
    with pytest.raises(ArtifactPathError, match=r"expected one of: jar, zip"):
        validate_artifact_path(bundle, ["zip", "jar"])

    assert validate_artifact_path(tmp_path, ["jar"], allow_directory=True) == tmp_path


def test_extract_tar_strips_leading_dot_slash(tmp_path: Path, make_zip) -> None:
    archive_path = tmp_path / "dotted.tar"
    with tarfile.open(archive_path, "w") as archive:
        root = tarfile.TarInfo(".")
        root.type = tarfile.DIRTYPE
        archive.addfile(root)
        member = tarfile.TarInfo("./lib/a.txt")
        member.size = 5
        archive.addfile(member, io.BytesIO(b"alpha"))

    tar_snapshot = extract_snapshot(archive_path)
    zip_snapshot = extract_snapshot(make_zip("plain.zip", {"lib/a.txt": b"alpha"}))

    assert [entry.path for entry in tar_snapshot.entries] == ["lib/a.txt"]
    assert tar_snapshot.entries[0].fingerprint == zip_snapshot.entries[0].fingerprint

    with ArchiveContentVerifier(archive_path, tmp_path / "plain.zip") as verify:
        assert verify(tar_snapshot.entries[0], zip_snapshot.entries[0]) is True


def test_content_verifier_compares_bytes(make_zip, make_tar) -> None:
    source = make_zip("a.zip", {"same.txt": b"payload", "other.txt": b"payloae"})
    target = make_tar("b.tar.gz", {"renamed.txt": b"payload"})

    renamed = Entry(path="renamed.txt", size=7, modified_time=0, fingerprint="x")
    same = Entry(path="same.txt", size=7, modified_time=0, fingerprint="x")
    other = Entry(path="other.txt", size=7, modified_time=0, fingerprint="x")

    with ArchiveContentVerifier(source, target) as verify:
        assert verify(same, renamed) is True
        assert verify(other, renamed) is False
        assert verify(Entry(path="same.txt", size=3, modified_time=0, fingerprint="x"), renamed) is False


def test_content_verifier_opens_each_archive_once(make_zip, monkeypatch: pytest.MonkeyPatch) -> None:
    members = {f"lib/{index}.txt": str(index).encode() for index in range(20)}
    source = make_zip("a.zip", members)
    target = make_zip("b.zip", members)
    opened: list[Path] = []

    class CountingZipFile(zipfile.ZipFile):
        def __init__(self, file, *args, **kwargs):
            opened.append(Path(file))
            super().__init__(file, *args, **kwargs)

    monkeypatch.setattr(zipfile, "ZipFile", CountingZipFile)

    with ArchiveContentVerifier(source, target) as verify:
        for name, content in members.items():
            entry = Entry(path=name, size=len(content), modified_time=0, fingerprint="x")
            assert verify(entry, entry) is True

    assert opened == [source, target]


def test_directory_content_verifier(tmp_path: Path, make_zip) -> None:
    root = tmp_path / "unpacked"
    root.mkdir()
    (root / "a.txt").write_bytes(b"alpha")
    archive = make_zip("b.zip", {"moved/a.txt": b"alpha"})

    source = Entry(path="a.txt", size=5, modified_time=0, fingerprint="x")
    target = Entry(path="moved/a.txt", size=5, modified_time=0, fingerprint="x")
    with ArchiveContentVerifier(root, archive) as verify:
        assert verify(source, target) is True
        with pytest.raises(KeyError):
            verify(Entry(path="missing.txt", size=5, modified_time=0, fingerprint="x"), target)
