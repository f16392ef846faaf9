"""On-disk layout of a partition: super block, bitmaps, formatting and mounting."""

from __future__ import annotations

import struct
from dataclasses import astuple, dataclass
from enum import Enum

from .disk import SECTOR_SIZE, Disk, Partition

SECTOR_BITS = SECTOR_SIZE * 8
BLOCK_SIZE = 4096
BLOCK_SECTORS = BLOCK_SIZE // SECTOR_SIZE
MAX_FILES_PER_PARTITION = 4096
SUPERBLOCK_MAGIC = 0x2005119

# index, size, open count, write-deny flag, 15 sector addresses, list link.
INODE_RECORD = struct.Struct("<IIIB3x15I8x")
INODE_SIZE = INODE_RECORD.size
INODE_SECTOR_SLOTS = 15

_SUPERBLOCK_FORMAT = struct.Struct("<13I460x")
_DIR_ENTRY_FORMAT = struct.Struct("<16sII")
_FT_DIR = 2


class FileSystemError(Exception):
    """Raised when the file system cannot carry out an operation."""


class BitmapKind(Enum):
    """Which of a partition's two bitmaps an index refers to."""

    INODE = "inode"
    BLOCK = "block"


@dataclass
class SuperBlock:
    """The partition's second sector: where every on-disk area lives."""

    magic: int = SUPERBLOCK_MAGIC
    sector_cnt: int = 0
    inode_cnt: int = MAX_FILES_PER_PARTITION
    lba: int = 0
    sector_bitmap_lba: int = 0
    sector_bitmap_sector_cnt: int = 0
    inode_bitmap_lba: int = 0
    inode_bitmap_sector_cnt: int = 0
    inode_table_lba: int = 0
    inode_table_sector_cnt: int = 0
    data_lba: int = 0
    root_inode_idx: int = 0
    dir_entry_size: int = _DIR_ENTRY_FORMAT.size

    def pack(self) -> bytes:
        return _SUPERBLOCK_FORMAT.pack(*astuple(self))

    @classmethod
    def unpack(cls, raw: bytes) -> SuperBlock:
        if len(raw) < _SUPERBLOCK_FORMAT.size:
            raise FileSystemError("super block is shorter than one sector")
        return cls(*_SUPERBLOCK_FORMAT.unpack(raw[: _SUPERBLOCK_FORMAT.size]))


class Bitmap:
    """A bit array stored least significant bit first within each byte."""

    def __init__(self, data: bytes | bytearray = b"") -> None:
        self.data = bytearray(data)

    def __len__(self) -> int:
        return len(self.data) * 8

    def _locate(self, index: int) -> tuple[int, int]:
        if not 0 <= index < len(self):
            raise IndexError(f"bit {index} is outside the bitmap")
        return index // 8, 1 << (index % 8)

    def test(self, index: int) -> bool:
        byte, mask = self._locate(index)
        return bool(self.data[byte] & mask)

    def set(self, index: int) -> None:
        byte, mask = self._locate(index)
        self.data[byte] |= mask

    def reset(self, index: int) -> None:
        byte, mask = self._locate(index)
        self.data[byte] &= ~mask & 0xFF

    def allocate(self, count: int = 1) -> int:
        """Find ``count`` consecutive free bits, mark them used, return the first."""
        if count <= 0:
            raise ValueError("count must be positive")
        run = 0
        for index in range(len(self)):
            if self.data[index // 8] == 0xFF and index % 8 == 0:
                run = 0
                continue
            if self.test(index):
                run = 0
                continue
            run += 1
            if run == count:
                start = index - count + 1
                for bit in range(start, index + 1):
                    self.set(bit)
                return start
        raise FileSystemError(f"no run of {count} free bits in the bitmap")


def _div_round_up(value: int, step: int) -> int:
    return (value + step - 1) // step


def _read_superblock(disk: Disk, partition: Partition) -> SuperBlock:
    return SuperBlock.unpack(disk.read(partition.start_lba + 1, 1))


def is_formatted(disk: Disk, partition: Partition) -> bool:
    """Whether the partition carries this file system's magic number."""
    return _read_superblock(disk, partition).magic == SUPERBLOCK_MAGIC


def format_partition(disk: Disk, partition: Partition) -> SuperBlock:
    """Lay out an empty file system holding only the root directory."""
    inode_bitmap_sectors = _div_round_up(MAX_FILES_PER_PARTITION, SECTOR_BITS)
    inode_table_sectors = _div_round_up(
        INODE_SIZE * MAX_FILES_PER_PARTITION, SECTOR_SIZE
    )
    used = 1 + 1 + inode_bitmap_sectors + inode_table_sectors
    if partition.sec_cnt <= used:
        raise FileSystemError(f"{partition.name} is too small to format")
    free = partition.sec_cnt - used
    block_bitmap_sectors = _div_round_up(free, SECTOR_BITS)
    block_bitmap_len = free - block_bitmap_sectors
    block_bitmap_sectors = _div_round_up(block_bitmap_len, SECTOR_BITS)
    if block_bitmap_len < BLOCK_SECTORS:
        raise FileSystemError(f"{partition.name} has no room for the root directory")

    sb = SuperBlock(sector_cnt=partition.sec_cnt, lba=partition.start_lba)
    sb.sector_bitmap_lba = sb.lba + 2
    sb.sector_bitmap_sector_cnt = block_bitmap_sectors
    sb.inode_bitmap_lba = sb.sector_bitmap_lba + sb.sector_bitmap_sector_cnt
    sb.inode_bitmap_sector_cnt = inode_bitmap_sectors
    sb.inode_table_lba = sb.inode_bitmap_lba + sb.inode_bitmap_sector_cnt
    sb.inode_table_sector_cnt = inode_table_sectors
    sb.data_lba = sb.inode_table_lba + sb.inode_table_sector_cnt
    disk.write(partition.start_lba + 1, sb.pack())

    # Block bitmap: the first block holds the root directory, bits past the
    # usable area in the last sector are marked taken.
    block_bitmap = Bitmap(bytes(block_bitmap_sectors * SECTOR_SIZE))
    for bit in range(BLOCK_SECTORS):
        block_bitmap.set(bit)
    last_byte = block_bitmap_len // 8
    last_bit = block_bitmap_len % 8
    tail = SECTOR_SIZE - last_byte % SECTOR_SIZE
    end = min(last_byte + tail, len(block_bitmap.data))
    block_bitmap.data[last_byte:end] = b"\xff" * max(0, end - last_byte)
    if last_byte < len(block_bitmap.data):
        for bit in range(last_bit):
            block_bitmap.reset(last_byte * 8 + bit)
    disk.write(sb.sector_bitmap_lba, bytes(block_bitmap.data))

    inode_bitmap = Bitmap(bytes(inode_bitmap_sectors * SECTOR_SIZE))
    inode_bitmap.set(0)
    disk.write(sb.inode_bitmap_lba, bytes(inode_bitmap.data))

    table = bytearray(inode_table_sectors * SECTOR_SIZE)
    root_sectors = [sb.data_lba] + [0] * (INODE_SECTOR_SLOTS - 1)
    table[:INODE_SIZE] = INODE_RECORD.pack(0, 2, 0, 0, *root_sectors)
    disk.write(sb.inode_table_lba, bytes(table))

    root = bytearray(SECTOR_SIZE)
    entries = _DIR_ENTRY_FORMAT.pack(b".", 0, _FT_DIR) + _DIR_ENTRY_FORMAT.pack(
        b"..", 0, _FT_DIR
    )
    root[: len(entries)] = entries
    disk.write(sb.data_lba, bytes(root))
    return sb


class Volume:
    """A mounted partition: its super block and in-memory bitmaps."""

    def __init__(self, disk: Disk, partition: Partition) -> None:
        self.disk = disk
        self.partition = partition
        sb = _read_superblock(disk, partition)
        if sb.magic != SUPERBLOCK_MAGIC:
            raise FileSystemError(f"{partition.name} holds no file system")
        self.sb = sb
        self.block_bitmap = Bitmap(
            disk.read(sb.sector_bitmap_lba, sb.sector_bitmap_sector_cnt)
        )
        self.inode_bitmap = Bitmap(
            disk.read(sb.inode_bitmap_lba, sb.inode_bitmap_sector_cnt)
        )

    def allocate_inode(self) -> int:
        """Mark a free inode used and return its index."""
        return self.inode_bitmap.allocate(1)

    def allocate_block(self) -> int:
        """Mark a free block used and return its first bit in the block bitmap.

        The block's sector is that index plus ``sb.data_lba``.
        """
        return self.block_bitmap.allocate(BLOCK_SECTORS)

    def free_block(self, index: int) -> None:
        """Mark the block starting at bit ``index`` free (in memory only)."""
        for bit in range(index, index + BLOCK_SECTORS):
            self.block_bitmap.reset(bit)

    def free_inode(self, index: int) -> None:
        """Mark inode ``index`` free (in memory only)."""
        self.inode_bitmap.reset(index)

    def sync_bitmap(self, index: int, kind: BitmapKind) -> None:
        """Write the bitmap sector holding bit ``index`` back to disk."""
        sector = index // SECTOR_BITS
        offset = sector * SECTOR_SIZE
        if kind is BitmapKind.INODE:
            bitmap, base = self.inode_bitmap, self.sb.inode_bitmap_lba
        else:
            bitmap, base = self.block_bitmap, self.sb.sector_bitmap_lba
        self.disk.write(base + sector, bytes(bitmap.data[offset : offset + SECTOR_SIZE]))
        if kind is BitmapKind.BLOCK:
            last = (index + BLOCK_SECTORS - 1) // SECTOR_BITS
            following = offset + SECTOR_SIZE
            if last != sector and following < len(bitmap.data):
                self.disk.write(
                    base + sector + 1,
                    bytes(bitmap.data[following : following + SECTOR_SIZE]),
                )

    def read_block(self, lba: int) -> bytes:
        """Read one block starting at sector ``lba``."""
        return self.disk.read(lba, BLOCK_SECTORS)

    def write_block(self, lba: int, data: bytes | bytearray) -> None:
        """Write up to one block at sector ``lba``, zero-filling the rest."""
        if len(data) > BLOCK_SIZE:
            raise FileSystemError(f"{len(data)} bytes do not fit in one block")
        self.disk.write(lba, bytes(data) + bytes(BLOCK_SIZE - len(data)))


def mount(disk: Disk, partition: Partition) -> Volume:
    """Format the partition if it holds no file system, then mount it."""
    if not is_formatted(disk, partition):
        format_partition(disk, partition)
    return Volume(disk, partition)