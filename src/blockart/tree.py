"""
Virtual Directory Trees and Package Archives

A PackTree holds named text/binary blobs under slash-separated paths
relative to a root directory name. It is built in memory and written
out in one go, optionally followed by zipping into a package file.
"""

from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, Tuple, Union
import logging
import shutil
import zipfile

logger = logging.getLogger(__name__)


Blob = Union[str, bytes]


class PackTree:
    """
    In-memory directory tree.

    Usage:
        tree = PackTree("my_pack")
        tree.write_file("functions/tick.json", "{}")
        tree.append_line("functions/a.mcfunction", "say hi")
        root = tree.write("out/")
    """

    def __init__(self, name: str):
        self.name = name
        self._files: Dict[str, Blob] = {}

    @staticmethod
    def _key(path: str) -> str:
        key = PurePosixPath(path)
        if key.is_absolute() or ".." in key.parts:
            raise ValueError(f"Path must stay inside the tree: {path}")
        return str(key)

    def write_file(self, path: str, content: Blob):
        """Create or replace a file."""
        self._files[self._key(path)] = content

    def append_line(self, path: str, line: str):
        """Append a line to a text file, creating it if needed."""
        key = self._key(path)
        current = self._files.get(key, "")
        if isinstance(current, bytes):
            raise TypeError(f"{path} holds binary content")
        self._files[key] = f"{current}{line}\n"

    def read_file(self, path: str) -> Blob:
        return self._files[self._key(path)]

    def __contains__(self, path: str) -> bool:
        return self._key(path) in self._files

    def __len__(self) -> int:
        return len(self._files)

    def files(self) -> Iterator[Tuple[str, Blob]]:
        """Iterate (path, content) pairs in path order."""
        for path in sorted(self._files):
            yield path, self._files[path]

    def write(self, target_dir: Union[str, Path], overwrite: bool = True) -> Path:
        """
        Materialize the tree as ``target_dir/<name>``.

        Args:
            target_dir: Parent directory
            overwrite: Replace an existing directory of the same name

        Returns:
            Path of the written root directory

        Raises:
            FileExistsError: If the root exists and overwrite is False
        """
        root = Path(target_dir) / self.name
        if root.exists():
            if not overwrite:
                raise FileExistsError(f"Output already exists: {root}")
            shutil.rmtree(root)

        for path, content in self.files():
            file_path = root / path
            file_path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                file_path.write_bytes(content)
            else:
                file_path.write_text(content, encoding="utf-8")

        logger.info("Wrote %d files to %s", len(self._files), root)
        return root


def compress_pack(source_dir: Union[str, Path], suffix: str = ".mcpack",
                  remove_source: bool = True) -> Path:
    """
    Zip a directory into a package file beside it.

    Archive entries are prefixed with the directory's own name.

    Args:
        source_dir: Directory to archive
        suffix: Package file extension
        remove_source: Delete the directory afterwards

    Returns:
        Path of the package file
    """
    source_dir = Path(source_dir)
    package = source_dir.with_name(source_dir.name + suffix)

    with zipfile.ZipFile(package, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
        for file_path in sorted(source_dir.rglob("*")):
            if file_path.is_file():
                arcname = PurePosixPath(source_dir.name, *file_path.relative_to(source_dir).parts)
                zf.write(file_path, str(arcname))

    if remove_source:
        shutil.rmtree(source_dir)

    logger.info("Packed %s", package)
    return package
