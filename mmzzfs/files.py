"""The system-wide table of open files and file reading and writing."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntFlag

from .directory import ENTRY_SIZE, DirEntry, Directory, FileType
from .inode import DIRECT_BLOCKS, INDIRECT_SLOT, MAX_BLOCKS, Inode, InodeTable
from .volume import BLOCK_SIZE, BitmapKind, FileSystemError

MAX_FILE_CNT_SYSTEM_OPEN = 64
STD_FD_CNT = 2

SEEK_SET = 1
SEEK_CUR = 2
SEEK_END = 3


class OpenFlag(IntFlag):
    """Modes a file may be opened with."""

    RDONLY = 1
    WRONLY = 2
    RDWR = 3
    CREATE = 4


class FileTableError(FileSystemError):
    """Raised when a descriptor is invalid or no descriptor is free."""


@dataclass
class OpenFile:
    """An open file: its inode, open mode and current position."""

    inode: Inode
    flags: OpenFlag
    position: int = 0

    @property
    def writable(self) -> bool:
        return bool(self.flags & OpenFlag.WRONLY)


class FileTable:
    """Open files of one volume, addressed by descriptor numbers."""

    def __init__(
        self, table: InodeTable, capacity: int = MAX_FILE_CNT_SYSTEM_OPEN
    ) -> None:
        self.table = table
        self.capacity = capacity
        self._files: dict[int, OpenFile] = {}

    def _free_fd(self) -> int:
        for fd in range(STD_FD_CNT, self.capacity):
            if fd not in self._files:
                return fd
        raise FileTableError("the open file count is full")

    def _get(self, fd: int) -> OpenFile:
        try:
            return self._files[fd]
        except KeyError:
            raise FileTableError(f"descriptor {fd} is not open") from None

    def get(self, fd: int) -> OpenFile:
        """The open file behind descriptor ``fd``."""
        return self._get(fd)

    def create(
        self, directory: Directory, name: str, flags: OpenFlag = OpenFlag.RDWR
    ) -> int:
        """Create an empty file called ``name`` in ``directory`` and open it."""
        DirEntry(name, 0).pack()
        volume = self.table.volume
        index = volume.allocate_inode()
        try:
            fd = self._free_fd()
            directory.add_entry(DirEntry(name, index, FileType.FILE))
        except FileSystemError:
            volume.free_inode(index)
            raise
        self.table.write(Inode(index))
        volume.sync_bitmap(index, BitmapKind.INODE)
        inode = self.table.open(index)
        self._files[fd] = OpenFile(inode, OpenFlag(flags))
        return fd

    def open(self, index: int, flags: OpenFlag = OpenFlag.RDONLY) -> int:
        """Open the file with inode ``index``; only one writer at a time."""
        fd = self._free_fd()
        inode = self.table.open(index)
        file = OpenFile(inode, OpenFlag(flags))
        if file.writable:
            if inode.write_deny:
                self.table.close(inode)
                raise FileTableError(f"inode {index} is already open for writing")
            inode.write_deny = True
        self._files[fd] = file
        return fd

    def close(self, fd: int) -> None:
        """Close descriptor ``fd``."""
        file = self._get(fd)
        if file.writable:
            file.inode.write_deny = False
        self.table.close(file.inode)
        del self._files[fd]

    def _allocate_block(self, inode: Inode, block_no: int) -> int:
        volume = self.table.volume
        data_lba = volume.sb.data_lba
        data_index = volume.allocate_block()
        allocated = [data_index]
        lba = data_index + data_lba
        if block_no < DIRECT_BLOCKS:
            inode.sectors[block_no] = lba
        else:
            table_lba = inode.sectors[INDIRECT_SLOT]
            if table_lba:
                addresses = bytearray(volume.read_block(table_lba))
            else:
                try:
                    table_index = volume.allocate_block()
                except FileSystemError:
                    volume.free_block(data_index)
                    raise
                allocated.append(table_index)
                table_lba = table_index + data_lba
                inode.sectors[INDIRECT_SLOT] = table_lba
                addresses = bytearray(BLOCK_SIZE)
            struct.pack_into("<I", addresses, 4 * (block_no - DIRECT_BLOCKS), lba)
            volume.write_block(table_lba, addresses)
        for index in allocated:
            volume.sync_bitmap(index, BitmapKind.BLOCK)
        return lba

    def write(self, fd: int, data: bytes) -> int:
        """Write ``data`` at the current position; return the bytes written."""
        file = self._get(fd)
        inode = file.inode
        volume = self.table.volume
        data = bytes(data)
        addresses = self.table.block_addresses(inode)
        end_block = inode.size // BLOCK_SIZE
        pos = file.position
        written = 0
        while written < len(data):
            block_no = pos // BLOCK_SIZE
            if block_no >= MAX_BLOCKS:
                break
            offset = pos % BLOCK_SIZE
            count = min(len(data) - written, BLOCK_SIZE - offset)
            lba = addresses[block_no]
            if lba and block_no <= end_block:
                block = bytearray(volume.read_block(lba))
            else:
                if not lba:
                    try:
                        lba = self._allocate_block(inode, block_no)
                    except FileSystemError:
                        break
                    addresses[block_no] = lba
                block = bytearray(BLOCK_SIZE)
            block[offset : offset + count] = data[written : written + count]
            volume.write_block(lba, block)
            written += count
            pos += count
        inode.size = max(pos, inode.size)
        self.table.write(inode)
        file.position = pos
        return written

    def read(self, fd: int, count: int) -> bytes:
        """Read up to ``count`` bytes from the current position."""
        if count < 0:
            raise ValueError("count must not be negative")
        file = self._get(fd)
        inode = file.inode
        volume = self.table.volume
        addresses = self.table.block_addresses(inode)
        pos = file.position
        out = bytearray()
        while len(out) < count and pos < inode.size:
            block_no = pos // BLOCK_SIZE
            if block_no >= MAX_BLOCKS or not addresses[block_no]:
                break
            offset = pos % BLOCK_SIZE
            size = min(BLOCK_SIZE - offset, count - len(out), inode.size - pos)
            block = volume.read_block(addresses[block_no])
            out += block[offset : offset + size]
            pos += size
        file.position = pos
        return bytes(out)

    def seek(self, fd: int, offset: int, whence: int = SEEK_SET) -> int:
        """Move the position of ``fd`` and return the new position."""
        file = self._get(fd)
        bases = {SEEK_SET: 0, SEEK_CUR: file.position, SEEK_END: file.inode.size}
        if whence not in bases:
            raise ValueError(f"unknown whence {whence}")
        pos = bases[whence] + offset
        if not 0 <= pos <= file.inode.size:
            raise FileTableError(f"position {pos} is outside the file")
        file.position = pos
        return pos


def parent_index(directory: Directory) -> int:
    """The inode index of the directory's parent, taken from its '..' entry."""
    first = directory.inode.sectors[0]
    if not first:
        raise FileSystemError("directory has no data block")
    raw = directory.table.volume.disk.read(first, 1)
    return DirEntry.unpack(raw[ENTRY_SIZE : 2 * ENTRY_SIZE]).index


def entry_name(table: InodeTable, parent: int, index: int) -> tuple[str, int]:
    """Name of inode ``index`` inside directory ``parent``, and the parent's parent.

    The name is empty when the directory has no such entry.
    """
    directory = Directory.open(table, parent)
    try:
        grandparent = parent_index(directory)
        for entry in directory.entries():
            if entry.index == index:
                return entry.name, grandparent
        return "", grandparent
    finally:
        directory.close()