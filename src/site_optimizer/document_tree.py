"""
Document tree access.

A document tree is a directory of markup documents. Each file is an
independent addressable unit keyed by its POSIX path relative to the root.
"""

import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Iterator, Union

from .errors import DocumentNotFoundError

logger = logging.getLogger(__name__)


DOCUMENT_SUFFIXES = (".html", ".htm")


def is_hidden(relative: Path) -> bool:
    """True if any component of a relative path starts with a dot."""
    return any(part.startswith(".") for part in relative.parts)


def _file_mode(path: Path) -> int:
    """Permission bits to give ``path``: its current mode, or the umask default."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def atomic_write_text(path: Path, content: str, encoding: str = "utf-8") -> None:
    """
    Write text to ``path`` through a temp file in the same directory.

    Readers see either the old content or the new content, never a partial file.
    An existing file keeps its permission bits.
    """
    mode = _file_mode(path)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as handle:
            handle.write(content)
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class DocumentTree:
    """A site's document tree rooted at a local directory."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()

    def __repr__(self) -> str:
        return f"DocumentTree({str(self.root)!r})"

    def exists(self) -> bool:
        return self.root.is_dir()

    def resolve(self, relative_path: str) -> Path:
        """
        Resolve a document path inside the tree.

        Args:
            relative_path: POSIX path relative to the root (e.g. "blog/post.html").

        Returns:
            Absolute path of an existing file.

        Raises:
            DocumentNotFoundError: If the path is empty, escapes the root or
                does not name an existing file.
        """
        if not relative_path or not str(relative_path).strip():
            raise DocumentNotFoundError("document not found: empty path")

        candidate = (self.root / str(relative_path).lstrip("/")).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError:
            raise DocumentNotFoundError(
                f"document not found: {relative_path} is outside the document tree"
            ) from None

        if not candidate.is_file():
            raise DocumentNotFoundError(f"document not found: {relative_path}")
        return candidate

    def relative(self, path: Path) -> str:
        """POSIX path of ``path`` relative to the root."""
        return Path(path).resolve().relative_to(self.root).as_posix()

    def read(self, relative_path: str) -> str:
        return self.resolve(relative_path).read_text(encoding="utf-8")

    def write(self, relative_path: str, content: str) -> None:
        """Replace a document's content in full, atomically."""
        atomic_write_text(self.resolve(relative_path), content)

    def iter_documents(self) -> Iterator[str]:
        """
        Yield relative paths of all markup documents, sorted.

        Hidden files and anything under a hidden directory are skipped.
        """
        paths = []
        for path in self.root.rglob("*"):
            relative = path.relative_to(self.root)
            if is_hidden(relative) or not path.is_file():
                continue
            if path.suffix.lower() in DOCUMENT_SUFFIXES:
                paths.append(relative.as_posix())
        yield from sorted(paths)

