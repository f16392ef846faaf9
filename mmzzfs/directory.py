"""Directory entries and directories stored in inode blocks."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterator

from .inode import DIRECT_BLOCKS, INDIRECT_SLOT, Inode, InodeTable
from .volume import BLOCK_SIZE, BitmapKind, FileSystemError

FILENAME_MAX_LEN = 16

_ENTRY_FORMAT = struct.Struct("<16sII")
_TYPE_OFFSET = 20
ENTRY_SIZE = _ENTRY_FORMAT.size
ENTRIES_PER_BLOCK = BLOCK_SIZE // ENTRY_SIZE


class FileType(IntEnum):
    """What a directory entry refers to; UNKNOWN marks a free slot."""

    UNKNOWN = 0
    FILE = 1
    DIR = 2


@dataclass
class DirEntry:
    """A name, the inode it refers to and the kind of object it is."""

    name: str
    index: int
    filetype: FileType = FileType.FILE

    def pack(self) -> bytes:
        raw = self.name.encode("utf-8")
        if len(raw) > FILENAME_MAX_LEN:
            raise ValueError(
                f"file name {self.name!r} is longer than {FILENAME_MAX_LEN} bytes"
            )
        return _ENTRY_FORMAT.pack(raw, self.index, int(self.filetype))

    @classmethod
    def unpack(cls, raw: bytes) -> DirEntry:
        if len(raw) < ENTRY_SIZE:
            raise FileSystemError("directory entry is truncated")
        name, index, kind = _ENTRY_FORMAT.unpack(raw[:ENTRY_SIZE])
        try:
            filetype = FileType(kind)
        except ValueError as exc:
            raise FileSystemError(f"unknown file type {kind}") from exc
        text = name.split(b"\0", 1)[0].decode("utf-8", errors="replace")
        return cls(text, index, filetype)


class Directory:
    """An open directory: its inode and the table it was opened from."""

    def __init__(self, table: InodeTable, inode: Inode, is_root: bool = False) -> None:
        self.table = table
        self.inode = inode
        self.is_root = is_root
        self.position = 0

    @classmethod
    def open(cls, table: InodeTable, index: int) -> Directory:
        """Open the directory whose inode is ``index``."""
        return cls(table, table.open(index))

    def close(self) -> None:
        """Release the directory's inode; the root directory stays open."""
        if self.is_root:
            return
        self.table.close(self.inode)

    def __enter__(self) -> Directory:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _blocks(self) -> Iterator[bytes]:
        volume = self.table.volume
        for lba in self.table.block_addresses(self.inode):
            if lba:
                yield volume.read_block(lba)

    def entries(self) -> Iterator[DirEntry]:
        """Yield every used entry, in on-disk order."""
        for block in self._blocks():
            for slot in range(ENTRIES_PER_BLOCK):
                start = slot * ENTRY_SIZE
                entry = DirEntry.unpack(block[start : start + ENTRY_SIZE])
                if entry.filetype is not FileType.UNKNOWN:
                    yield entry

    def search(self, name: str) -> DirEntry | None:
        """The entry called ``name``, or None."""
        return next((entry for entry in self.entries() if entry.name == name), None)

    def add_entry(self, entry: DirEntry) -> None:
        """Store ``entry`` in the first free slot, adding a block if needed."""
        packed = entry.pack()
        volume = self.table.volume
        for position, lba in enumerate(self.table.block_addresses(self.inode)):
            if not lba:
                self._add_block(position, packed)
                self._grow()
                return
            block = bytearray(volume.read_block(lba))
            for slot in range(ENTRIES_PER_BLOCK):
                start = slot * ENTRY_SIZE
                (kind,) = struct.unpack_from("<I", block, start + _TYPE_OFFSET)
                if kind == FileType.UNKNOWN:
                    block[start : start + ENTRY_SIZE] = packed
                    volume.write_block(lba, block)
                    self._grow()
                    return
        raise FileSystemError("directory is full")

    def _add_block(self, position: int, packed: bytes) -> None:
        volume = self.table.volume
        data_lba = volume.sb.data_lba
        block_index = volume.allocate_block()
        allocated = [block_index]
        sectors = self.inode.sectors
        if position >= DIRECT_BLOCKS and not sectors[INDIRECT_SLOT]:
            try:
                table_index = volume.allocate_block()
            except FileSystemError:
                volume.free_block(block_index)
                raise
            allocated.append(table_index)
            sectors[INDIRECT_SLOT] = table_index + data_lba
            volume.write_block(sectors[INDIRECT_SLOT], bytes(BLOCK_SIZE))
        data = block_index + data_lba
        if position < DIRECT_BLOCKS:
            sectors[position] = data
        else:
            table_lba = sectors[INDIRECT_SLOT]
            table = bytearray(volume.read_block(table_lba))
            struct.pack_into("<I", table, 4 * (position - DIRECT_BLOCKS), data)
            volume.write_block(table_lba, table)
        volume.write_block(data, packed)
        for index in allocated:
            volume.sync_bitmap(index, BitmapKind.BLOCK)

    def _grow(self) -> None:
        self.inode.size += 1
        self.table.write(self.inode)