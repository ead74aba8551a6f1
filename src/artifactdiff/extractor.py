"""Reading archive listings into snapshots."""

from __future__ import annotations

import calendar
import hashlib
import logging
import os
import shutil
import tarfile
import tempfile
import zipfile
import zlib
from abc import ABC, abstractmethod
from pathlib import Path
from typing import IO, Iterable, Iterator, Sequence

from .models import Entry, FingerprintMode, Snapshot

logger = logging.getLogger(__name__)

DEFAULT_HASH_ALGORITHM = "sha256"
CHUNK_SIZE = 1024 * 1024


class ArtifactFormatError(RuntimeError):
    """Raised when an artifact cannot be opened by any handler."""


class ArtifactPathError(RuntimeError):
    """Raised when an artifact path fails validation."""


def validate_artifact_path(path: Path, extensions: Iterable[str], *, allow_directory: bool = False) -> Path:
    """Check that ``path`` is a readable file with one of ``extensions``.

    Extensions may span several suffixes (``tar.gz``). With
    ``allow_directory`` an unpacked artifact directory is accepted as is.
    """

    path = Path(path)
    if not path.exists():
        raise ArtifactPathError(f"File not found: {path}")
    if allow_directory and path.is_dir():
        if not os.access(path, os.R_OK | os.X_OK):
            raise ArtifactPathError(f"Directory cannot be read: {path}")
        return path
    if not path.is_file():
        raise ArtifactPathError(f"Path is not a file: {path}")
    if not os.access(path, os.R_OK):
        raise ArtifactPathError(f"File cannot be read: {path}")

    allowed = sorted({ext.lower().lstrip(".") for ext in extensions})
    name = path.name.lower()
    if not any(name.endswith(f".{ext}") for ext in allowed):
        raise ArtifactPathError(f"Unsupported file type '{path.name}' (expected one of: {', '.join(allowed)})")
    return path


class Fingerprinter:
    """Builds fingerprint keys in either strong or weak mode."""

    def __init__(self, mode: FingerprintMode = FingerprintMode.STRONG, hash_algorithm: str = DEFAULT_HASH_ALGORITHM):
        self.mode = FingerprintMode(mode)
        if self.mode is FingerprintMode.STRONG and hash_algorithm not in hashlib.algorithms_available:
            raise ValueError(f"Unsupported hash algorithm '{hash_algorithm}'")
        self.hash_algorithm = hash_algorithm

    def __repr__(self) -> str:
        return f"Fingerprinter({self.mode.value}, {self.hash_algorithm})"

    def from_stream(self, handle: IO[bytes], size: int) -> str:
        if self.mode is FingerprintMode.WEAK:
            crc = 0
            for chunk in iter(lambda: handle.read(CHUNK_SIZE), b""):
                crc = zlib.crc32(chunk, crc)
            return self.weak_key(crc, size)

        digest = hashlib.new(self.hash_algorithm)
        for chunk in iter(lambda: handle.read(CHUNK_SIZE), b""):
            digest.update(chunk)
        return f"{self.hash_algorithm}:{digest.hexdigest()}"

    @staticmethod
    def weak_key(crc: int, size: int) -> str:
        return f"crc32:{crc & 0xFFFFFFFF:08x}:{size}"


def _normalise_member_name(name: str) -> str:
    name = name.replace("\\", "/").rstrip("/")
    while name.startswith("./"):
        name = name[2:]
    return name


def _zip_time_to_millis(date_time: tuple[int, int, int, int, int, int]) -> int:
    return calendar.timegm((*date_time, 0, 0, 0)) * 1000


class ArtifactHandler(ABC):
    """Base class for all archive listing handlers."""

    def __init__(self, fingerprinter: Fingerprinter) -> None:
        self._fingerprinter = fingerprinter

    @abstractmethod
    def check_file(self, path: Path) -> bool:
        """Return ``True`` if this handler can read ``path``."""

    @abstractmethod
    def list_entries(self, path: Path) -> Iterator[Entry]:
        """Yield the entries of ``path`` in the archive's own order."""

    @abstractmethod
    def open_reader(self, path: Path) -> MemberReader:
        """Open ``path`` once for repeated member lookups."""


class MemberReader(ABC):
    """Random access to the file members of one open artifact."""

    @abstractmethod
    def open(self, member: str) -> IO[bytes]:
        """Open the bytes of ``member``; raises ``KeyError`` if it is absent."""

    def close(self) -> None:
        pass

    def __enter__(self) -> MemberReader:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class _ZipMemberReader(MemberReader):
    def __init__(self, path: Path) -> None:
        self._archive = zipfile.ZipFile(path, "r")
        self._members = {
            _normalise_member_name(info.filename): info for info in self._archive.infolist() if not info.is_dir()
        }

    def open(self, member: str) -> IO[bytes]:
        return self._archive.open(self._members[member], "r")

    def close(self) -> None:
        self._archive.close()


class _TarMemberReader(MemberReader):
    """Compressed tars are inflated once into a temporary file so seeks stay cheap."""

    def __init__(self, path: Path) -> None:
        self._spool: IO[bytes] | None = None
        try:
            self._archive = tarfile.open(path, mode="r:")
        except tarfile.ReadError:
            self._spool = tempfile.TemporaryFile()
            with tarfile.open(path, mode="r:*") as compressed:
                compressed.fileobj.seek(0)
                shutil.copyfileobj(compressed.fileobj, self._spool, CHUNK_SIZE)
            self._spool.seek(0)
            self._archive = tarfile.open(fileobj=self._spool, mode="r:")
        self._members = {
            _normalise_member_name(info.name): info for info in self._archive.getmembers() if info.isfile()
        }

    def open(self, member: str) -> IO[bytes]:
        return self._archive.extractfile(self._members[member])

    def close(self) -> None:
        self._archive.close()
        if self._spool is not None:
            self._spool.close()


class _DirectoryMemberReader(MemberReader):
    def __init__(self, path: Path) -> None:
        self._root = path

    def open(self, member: str) -> IO[bytes]:
        candidate = self._root / member
        if not candidate.is_file():
            raise KeyError(member)
        return candidate.open("rb")


class ZipArtifactHandler(ArtifactHandler):
    """Handler for zip-based archives such as jar, war and plain zip files."""

    def check_file(self, path: Path) -> bool:
        return path.is_file() and zipfile.is_zipfile(path)

    def list_entries(self, path: Path) -> Iterator[Entry]:
        if not self.check_file(path):
            raise ArtifactFormatError(f"'{path}' is not a zip file")

        with zipfile.ZipFile(path, "r") as archive:
            for info in archive.infolist():
                name = _normalise_member_name(info.filename)
                modified = _zip_time_to_millis(info.date_time)
                if info.is_dir():
                    yield Entry(path=name, size=0, modified_time=modified, is_directory=True)
                    continue

                if self._fingerprinter.mode is FingerprintMode.WEAK:
                    fingerprint = Fingerprinter.weak_key(info.CRC, info.file_size)
                else:
                    with archive.open(info, "r") as handle:
                        fingerprint = self._fingerprinter.from_stream(handle, info.file_size)
                yield Entry(path=name, size=info.file_size, modified_time=modified, fingerprint=fingerprint)

    def open_reader(self, path: Path) -> MemberReader:
        return _ZipMemberReader(path)


class TarArtifactHandler(ArtifactHandler):
    """Handler for tar archives, including compressed variants."""

    def check_file(self, path: Path) -> bool:
        return path.is_file() and tarfile.is_tarfile(path)

    def list_entries(self, path: Path) -> Iterator[Entry]:
        if not self.check_file(path):
            raise ArtifactFormatError(f"'{path}' is not a tar file")

        with tarfile.open(path, mode="r") as archive:
            for member in archive:
                name = _normalise_member_name(member.name)
                if name in ("", "."):
                    continue
                modified = int(member.mtime) * 1000
                if member.isdir():
                    yield Entry(path=name, size=0, modified_time=modified, is_directory=True)
                elif member.isfile():
                    handle = archive.extractfile(member)
                    with handle:
                        fingerprint = self._fingerprinter.from_stream(handle, member.size)
                    yield Entry(path=name, size=member.size, modified_time=modified, fingerprint=fingerprint)
                else:
                    logger.debug("Skipping non-regular tar member '%s'", member.name)

    def open_reader(self, path: Path) -> MemberReader:
        return _TarMemberReader(path)


class DirectoryArtifactHandler(ArtifactHandler):
    """Handler for an already unpacked artifact tree."""

    def check_file(self, path: Path) -> bool:
        return path.is_dir()

    def list_entries(self, path: Path) -> Iterator[Entry]:
        if not self.check_file(path):
            raise ArtifactFormatError(f"'{path}' is not a directory")

        for root, dirs, files in os.walk(path):
            dirs.sort()
            root_path = Path(root)
            for name in dirs:
                child = root_path / name
                stat_result = child.stat()
                yield Entry(
                    path=child.relative_to(path).as_posix(),
                    size=0,
                    modified_time=stat_result.st_mtime_ns // 1_000_000,
                    is_directory=True,
                )
            for name in sorted(files):
                child = root_path / name
                stat_result = child.stat()
                with child.open("rb") as handle:
                    fingerprint = self._fingerprinter.from_stream(handle, stat_result.st_size)
                yield Entry(
                    path=child.relative_to(path).as_posix(),
                    size=stat_result.st_size,
                    modified_time=stat_result.st_mtime_ns // 1_000_000,
                    fingerprint=fingerprint,
                )

    def open_reader(self, path: Path) -> MemberReader:
        return _DirectoryMemberReader(path)


def _default_handlers(fingerprinter: Fingerprinter) -> Sequence[ArtifactHandler]:
    return (
        ZipArtifactHandler(fingerprinter),
        TarArtifactHandler(fingerprinter),
        DirectoryArtifactHandler(fingerprinter),
    )


def handler_for(path: Path, fingerprinter: Fingerprinter | None = None) -> ArtifactHandler:
    """Return the first handler able to read ``path``."""

    for handler in _default_handlers(fingerprinter or Fingerprinter()):
        if handler.check_file(path):
            return handler
    raise ArtifactFormatError(f"Could not find a handler that supports '{path}'")


def extract_snapshot(
    path: Path,
    *,
    mode: FingerprintMode = FingerprintMode.STRONG,
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM,
    label: str | None = None,
) -> Snapshot:
    """List ``path`` and fingerprint each of its files."""

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(2, "No such file or directory", str(path))

    fingerprinter = Fingerprinter(mode, hash_algorithm)
    handler = handler_for(path, fingerprinter)
    logger.info("Reading '%s' with %s", path, type(handler).__name__)

    try:
        entries = tuple(handler.list_entries(path))
    except (zipfile.BadZipFile, tarfile.TarError, zlib.error, EOFError) as exc:
        raise ArtifactFormatError(f"Unable to read '{path}': {exc}") from exc

    logger.info("Read %d entries from '%s'", len(entries), path)
    return Snapshot(label=label if label is not None else path.name, entries=entries)


class ArchiveContentVerifier:
    """Confirms fingerprint matches by comparing member bytes of two artifacts.

    Both artifacts are opened once and stay open until :meth:`close`; use the
    verifier as a context manager.
    """

    def __init__(self, source_path: Path, target_path: Path) -> None:
        self.source_path = Path(source_path)
        self.target_path = Path(target_path)
        self._source = handler_for(self.source_path).open_reader(self.source_path)
        try:
            self._target = handler_for(self.target_path).open_reader(self.target_path)
        except Exception:
            self._source.close()
            raise

    def __call__(self, source_entry: Entry, target_entry: Entry) -> bool:
        if source_entry.size != target_entry.size:
            return False

        with self._source.open(source_entry.path) as left, self._target.open(target_entry.path) as right:
            while True:
                left_chunk = left.read(CHUNK_SIZE)
                right_chunk = right.read(CHUNK_SIZE)
                if left_chunk != right_chunk:
                    return False
                if not left_chunk:
                    return True

    def close(self) -> None:
        try:
            self._source.close()
        finally:
            self._target.close()

    def __enter__(self) -> ArchiveContentVerifier:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
