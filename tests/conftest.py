from __future__ import annotations

import io
import tarfile
import zipfile
from pathlib import Path
from typing import Callable, Mapping

import pytest

ArchiveFactory = Callable[[str, Mapping[str, "bytes | None"]], Path]


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    return home


@pytest.fixture
def make_zip(tmp_path: Path) -> ArchiveFactory:
    """Build a zip archive; ``None`` content marks a directory entry."""

    def _make(name: str, members: Mapping[str, bytes | None]) -> Path:
        archive_path = tmp_path / name
        with zipfile.ZipFile(archive_path, "w") as archive:
            for member, content in members.items():
                info = zipfile.ZipInfo(member if content is not None else member.rstrip("/") + "/")
                info.date_time = (2024, 1, 2, 3, 4, 6)
                archive.writestr(info, content if content is not None else b"")
        return archive_path

    return _make


@pytest.fixture
def make_tar(tmp_path: Path) -> ArchiveFactory:
    def _make(name: str, members: Mapping[str, bytes | None]) -> Path:
        archive_path = tmp_path / name
        with tarfile.open(archive_path, "w:gz") as archive:
            for member, content in members.items():
                info = tarfile.TarInfo(member)
                info.mtime = 1_700_000_000
                if content is None:
                    info.type = tarfile.DIRTYPE
                    archive.addfile(info)
                else:
                    info.size = len(content)
                    archive.addfile(info, io.BytesIO(content))
        return archive_path

    return _make
