"""
Archive IO

Extracts course packages to working directories, repacks working trees
into new archives and locates files inside extracted trees.
"""

import logging
import os
import tempfile
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from .errors import FilesystemFailure, MissingArchiveInput

logger = logging.getLogger(__name__)

HTML_SUFFIXES = (".html", ".htm")


def is_html(path: Path) -> bool:
    return path.suffix.lower() in HTML_SUFFIXES


@contextmanager
def working_directory(prefix: str = "scorm_work_") -> Iterator[Path]:
    """
    Yield a freshly created, uniquely named temporary directory.

    The directory and everything below it is removed when the block exits,
    whether it exits normally or by an exception.
    """
    with tempfile.TemporaryDirectory(
        prefix=prefix, ignore_cleanup_errors=True
    ) as temp_dir:
        yield Path(temp_dir)


def extract_archive(archive_path: Path, dest_dir: Path) -> Path:
    """
    Extract every member of ``archive_path`` below ``dest_dir``.

    Member names that would escape ``dest_dir`` (absolute paths, ``..``
    components) are neutralized by ``zipfile`` itself.

    Raises:
        MissingArchiveInput: the archive does not exist
        FilesystemFailure: the archive is corrupt or encrypted, or cannot be
            written out
    """
    archive_path = Path(archive_path)
    if not archive_path.is_file():
        raise MissingArchiveInput(
            f"Archive not found: {archive_path}", path=str(archive_path)
        )

    dest_dir = Path(dest_dir)
    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive_path) as zf:
            zf.extractall(dest_dir)
    except zipfile.BadZipFile as e:
        raise FilesystemFailure(
            f"Not a valid zip archive: {archive_path.name} ({e})",
            path=str(archive_path),
        ) from e
    except (RuntimeError, NotImplementedError) as e:
        # Encrypted members and unsupported compression methods
        raise FilesystemFailure(
            f"Cannot extract {archive_path.name}: {e}",
            path=str(archive_path),
        ) from e
    except OSError as e:
        raise FilesystemFailure(
            f"Failed to extract {archive_path.name}: {e}",
            path=str(archive_path),
        ) from e

    logger.debug("Extracted %s into %s", archive_path, dest_dir)
    return dest_dir


def _walk_sorted(root: Path) -> Iterator[Tuple[Path, List[Path], List[Path]]]:
    """Depth-first walk yielding (dir, subdirs, files) sorted by name"""
    entries = sorted(root.iterdir(), key=lambda p: p.name)
    files = [p for p in entries if p.is_file()]
    dirs = [p for p in entries if p.is_dir()]
    yield root, dirs, files
    for sub in dirs:
        yield from _walk_sorted(sub)


def iter_files(root: Path) -> Iterator[Path]:
    for _, _, files in _walk_sorted(Path(root)):
        yield from files


def iter_html_files(root: Path) -> Iterator[Path]:
    for path in iter_files(root):
        if is_html(path):
            yield path


def _search(root: Path, predicate) -> Optional[Path]:
    # Files of a directory are checked before descending into its
    # subdirectories, so the shallowest match within a branch wins.
    for _, _, files in _walk_sorted(root):
        for path in files:
            if predicate(path):
                return path
    return None


def find_file(root: Path, filename: str) -> Optional[Path]:
    """Case-insensitive depth-first search for ``filename`` below ``root``"""
    wanted = filename.lower()
    return _search(Path(root), lambda p: p.name.lower() == wanted)


def find_first_html(root: Path) -> Optional[Path]:
    return _search(Path(root), is_html)


def pack_directory(source_dir: Path, output_path: Path) -> Path:
    """
    Zip the whole tree below ``source_dir`` into ``output_path``.

    Arcnames are POSIX paths relative to ``source_dir``; empty directories
    are kept as directory entries. The archive is assembled next to
    ``output_path`` and only moved into place once complete, so a failure
    never leaves a partial archive at the destination.
    """
    source_dir = Path(source_dir)
    output_path = Path(output_path)

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fd, partial_name = tempfile.mkstemp(
            prefix=f".{output_path.stem}_", suffix=".partial",
            dir=output_path.parent,
        )
        os.close(fd)
    except OSError as e:
        raise FilesystemFailure(
            f"Cannot create output archive {output_path}: {e}",
            path=str(output_path),
        ) from e

    partial = Path(partial_name)
    try:
        with zipfile.ZipFile(partial, "w", zipfile.ZIP_DEFLATED) as zf:
            for directory, subdirs, files in _walk_sorted(source_dir):
                if directory != source_dir and not subdirs and not files:
                    arcname = directory.relative_to(source_dir).as_posix()
                    zf.writestr(arcname + "/", b"")
                for path in files:
                    zf.write(path, arcname=path.relative_to(source_dir).as_posix())
        os.replace(partial, output_path)
    except OSError as e:
        raise FilesystemFailure(
            f"Failed to pack {source_dir} into {output_path.name}: {e}",
            path=str(output_path),
        ) from e
    finally:
        if partial.exists():
            partial.unlink()

    logger.debug("Packed %s into %s", source_dir, output_path)
    return output_path


def relative_posix(path: Path, base: Path) -> str:
    return Path(os.path.relpath(path, base)).as_posix()
