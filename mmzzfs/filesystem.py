"""Path lookup, directory entry removal and whole-file access on a mounted volume."""

from __future__ import annotations

from dataclasses import dataclass

from .directory import ENTRIES_PER_BLOCK, ENTRY_SIZE, DirEntry, Directory, FileType
from .disk import Disk, Partition, scan_partitions
from .files import FileTable, OpenFlag
from .inode import InodeTable
from .volume import FileSystemError, Volume, format_partition, is_formatted

ROOT_INODE = 0
_ROOT_PATHS = ("/", "/..", "/.")


def parse_path(path: str) -> tuple[str, str]:
    """Split off the first component of an absolute path.

    Returns the component and the rest of the path, which is empty or starts
    with '/'.
    """
    if not path.startswith("/"):
        raise ValueError(f"path {path!r} is not absolute")
    stripped = path.lstrip("/")
    name, sep, rest = stripped.partition("/")
    return name, sep + rest


def preprocess_path(path: str) -> str:
    """Check a path and drop its trailing slashes.

    Only absolute paths made of ASCII letters, digits, '_', '.' and '/' are
    accepted; anything else raises ValueError.
    """
    if not path.startswith("/"):
        raise ValueError(f"path {path!r} is not absolute")
    cleaned = path.rstrip("/")
    for char in cleaned:
        if char in "/._" or (char.isascii() and char.isalnum()):
            continue
        raise ValueError(f"path {path!r} holds the invalid character {char!r}")
    return cleaned


@dataclass
class SearchResult:
    """Outcome of a path lookup.

    ``name`` is the last component parsed, ``entry`` the entry found (None if
    the path does not exist), ``parent`` the inode of the directory holding
    the last component, or -1 when the lookup stopped before the last level.
    ``directory`` is the open directory asked for with ``keep_open``: the
    directory found, or the parent when the last component is missing.
    """

    name: str
    entry: DirEntry | None
    parent: int
    directory: Directory | None = None

    @property
    def found(self) -> bool:
        return self.entry is not None


class FileSystem:
    """The file system of one partition of a disk, formatted when needed."""

    def __init__(self, disk: Disk, partition_name: str | None = None) -> None:
        self.disk = disk
        partitions = [part for part in scan_partitions(disk) if part.sec_cnt]
        for part in partitions:
            if not is_formatted(disk, part):
                format_partition(disk, part)
        self.partition = self._choose(partitions, partition_name)
        self.volume = Volume(disk, self.partition)
        self.table = InodeTable(self.volume)
        self.root = Directory(self.table, self.table.open(ROOT_INODE), is_root=True)
        self.files = FileTable(self.table)

    @staticmethod
    def _choose(partitions: list[Partition], name: str | None) -> Partition:
        if not partitions:
            raise FileSystemError("the disk has no partitions")
        if name is None:
            return partitions[0]
        for part in partitions:
            if part.name == name:
                return part
        raise FileSystemError(f"no partition called {name}")

    def search(self, path: str, keep_open: bool = False) -> SearchResult:
        """Look ``path`` up, level by level, from the root directory."""
        if not path.startswith("/"):
            return SearchResult("", None, -1)
        root_index = self.root.inode.index
        if path in _ROOT_PATHS:
            directory = Directory.open(self.table, ROOT_INODE) if keep_open else None
            return SearchResult(
                "", DirEntry("", root_index, FileType.DIR), root_index, directory
            )

        last = self.root
        rest = path
        name = ""
        parent = -1
        entry: DirEntry | None = None
        while True:
            parent = last.inode.index
            name, rest = parse_path(rest)
            entry = last.search(name)
            if entry is None:
                if rest:
                    parent = -1
                if keep_open:
                    return SearchResult(name, None, parent, last)
                last.close()
                return SearchResult(name, None, parent)
            if entry.filetype is FileType.DIR:
                last.close()
                last = Directory.open(self.table, entry.index)
            elif entry.filetype is FileType.FILE:
                last.close()
                if rest:
                    return SearchResult(name, None, -1)
                return SearchResult(name, entry, parent)
            else:
                last.close()
                raise FileSystemError(f"entry {name!r} has no type")
            if not rest:
                break
        if keep_open:
            return SearchResult(name, entry, parent, last)
        last.close()
        return SearchResult(name, entry, parent)

    def delete_entry(self, directory: Directory, name: str) -> bool:
        """Clear the entry called ``name`` in ``directory``; False if absent."""
        volume = self.volume
        for lba in self.table.block_addresses(directory.inode):
            if not lba:
                continue
            block = bytearray(volume.read_block(lba))
            for slot in range(ENTRIES_PER_BLOCK):
                start = slot * ENTRY_SIZE
                entry = DirEntry.unpack(block[start : start + ENTRY_SIZE])
                if entry.filetype is not FileType.UNKNOWN and entry.name == name:
                    block[start : start + ENTRY_SIZE] = bytes(ENTRY_SIZE)
                    volume.write_block(lba, block)
                    directory.inode.size -= 1
                    self.table.write(directory.inode)
                    return True
        return False

    def open(self, path: str, flags: OpenFlag = OpenFlag.RDONLY) -> int:
        """Open the file at ``path``, creating it when CREATE is given."""
        cleaned = preprocess_path(path) or "/"
        flags = OpenFlag(flags)
        result = self.search(cleaned, keep_open=True)
        try:
            if result.entry is not None:
                if result.entry.filetype is FileType.DIR:
                    raise FileSystemError(f"{path} is a directory")
                return self.files.open(result.entry.index, flags)
            if result.parent == -1 or result.directory is None:
                raise FileSystemError(f"{path}: a parent directory does not exist")
            if not flags & OpenFlag.CREATE:
                raise FileSystemError(f"{path} does not exist")
            return self.files.create(result.directory, result.name, flags)
        finally:
            if result.directory is not None:
                result.directory.close()

    def read_file(self, path: str) -> bytes:
        """Return the whole contents of the file at ``path``."""
        fd = self.open(path, OpenFlag.RDONLY)
        try:
            return self.files.read(fd, self.files.get(fd).inode.size)
        finally:
            self.files.close(fd)

    def write_file(self, path: str, data: bytes) -> int:
        """Write ``data`` from the start of the file, creating it if needed."""
        fd = self.open(path, OpenFlag.CREATE | OpenFlag.WRONLY)
        try:
            return self.files.write(fd, data)
        finally:
            self.files.close(fd)