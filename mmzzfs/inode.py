"""Inodes and the per-partition table of open inodes."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

from .disk import SECTOR_SIZE
from .volume import (
    BLOCK_SIZE,
    INODE_RECORD,
    INODE_SECTOR_SLOTS,
    INODE_SIZE,
    MAX_FILES_PER_PARTITION,
    BitmapKind,
    FileSystemError,
    Volume,
)

DIRECT_BLOCKS = 12
INDIRECT_SLOT = 12
ADDRESSES_PER_BLOCK = BLOCK_SIZE // 4
MAX_BLOCKS = DIRECT_BLOCKS + ADDRESSES_PER_BLOCK

_INDIRECT_FORMAT = struct.Struct(f"<{ADDRESSES_PER_BLOCK}I")


@dataclass
class Inode:
    """A file's size and the sectors of its blocks."""

    index: int
    size: int = 0
    open_cnt: int = 0
    write_deny: bool = False
    sectors: list[int] = field(default_factory=lambda: [0] * INODE_SECTOR_SLOTS)

    def __post_init__(self) -> None:
        if len(self.sectors) != INODE_SECTOR_SLOTS:
            raise ValueError(f"an inode has exactly {INODE_SECTOR_SLOTS} sector slots")

    def pack(self) -> bytes:
        return INODE_RECORD.pack(
            self.index, self.size, self.open_cnt, int(self.write_deny), *self.sectors
        )

    @classmethod
    def unpack(cls, raw: bytes) -> Inode:
        if len(raw) < INODE_SIZE:
            raise FileSystemError("inode record is truncated")
        index, size, open_cnt, deny, *sectors = INODE_RECORD.unpack(raw[:INODE_SIZE])
        return cls(index, size, open_cnt, bool(deny), list(sectors))


class InodeTable:
    """Reads and writes inodes of a volume and shares the open ones."""

    def __init__(self, volume: Volume) -> None:
        self.volume = volume
        self._open: dict[int, Inode] = {}

    def _location(self, index: int) -> tuple[int, int, int]:
        if not 0 <= index < MAX_FILES_PER_PARTITION:
            raise FileSystemError(f"inode {index} is out of range")
        offset = INODE_SIZE * index
        first = offset // SECTOR_SIZE
        last = (offset + INODE_SIZE - 1) // SECTOR_SIZE
        lba = self.volume.sb.inode_table_lba + first
        return lba, last - first + 1, offset % SECTOR_SIZE

    def open(self, index: int) -> Inode:
        """Return inode ``index``, shared with any earlier opener."""
        inode = self._open.get(index)
        if inode is not None:
            inode.open_cnt += 1
            return inode
        lba, count, inner = self._location(index)
        raw = self.volume.disk.read(lba, count)
        inode = Inode.unpack(raw[inner : inner + INODE_SIZE])
        inode.open_cnt = 1
        inode.write_deny = False
        inode.index = index
        self._open[index] = inode
        return inode

    def write(self, inode: Inode) -> None:
        """Store the inode in the on-disk inode table."""
        lba, count, inner = self._location(inode.index)
        raw = bytearray(self.volume.disk.read(lba, count))
        raw[inner : inner + INODE_SIZE] = inode.pack()
        self.volume.disk.write(lba, bytes(raw))

    def close(self, inode: Inode) -> bool:
        """Drop one reference; True when the inode was released entirely."""
        inode.open_cnt -= 1
        if inode.open_cnt <= 0:
            inode.open_cnt = 0
            if self._open.get(inode.index) is inode:
                del self._open[inode.index]
            return True
        return False

    def find_open(self, index: int) -> Inode | None:
        """The open inode with this index, if any."""
        return self._open.get(index)

    def block_addresses(self, inode: Inode) -> list[int]:
        """Sector of each of the inode's blocks, direct then indirect; 0 if unused."""
        addresses = inode.sectors[:DIRECT_BLOCKS]
        if inode.sectors[INDIRECT_SLOT]:
            raw = self.volume.read_block(inode.sectors[INDIRECT_SLOT])
            addresses += _INDIRECT_FORMAT.unpack(raw)
        else:
            addresses += [0] * ADDRESSES_PER_BLOCK
        return list(addresses)

    def recycle(self, inode: Inode) -> list[int]:
        """Free the inode and its blocks on disk; return the freed block sectors."""
        volume = self.volume
        volume.free_inode(inode.index)
        volume.sync_bitmap(inode.index, BitmapKind.INODE)
        data_lba = volume.sb.data_lba
        addresses = self.block_addresses(inode)
        freed: list[int] = []
        indirect = inode.sectors[INDIRECT_SLOT]
        if indirect:
            index = indirect - data_lba
            volume.free_block(index)
            volume.sync_bitmap(index, BitmapKind.BLOCK)
            freed.append(indirect)
        for lba in addresses:
            if not lba:
                break
            index = lba - data_lba
            volume.free_block(index)
            volume.sync_bitmap(index, BitmapKind.BLOCK)
            freed.append(lba)
        return freed