"""Sector-addressed disk images, MBR partition tables and ATA identify data."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from pathlib import Path

SECTOR_SIZE = 512
PARTITION_TABLE_OFFSET = 446
PARTITION_ENTRY_SIZE = 16
PARTITION_TABLE_ENTRIES = 4
BOOT_SIGNATURE = 0xAA55
EXTENDED_PARTITION = 0x05
MAX_PRIMARY_PARTITIONS = 4
MAX_LOGICAL_PARTITIONS = 8
FIRST_LOGICAL_NUMBER = 5

_ENTRY_FORMAT = struct.Struct("<8BII")
_SERIAL_SLICE = slice(10 * 2, 10 * 2 + 20)
_MODEL_SLICE = slice(27 * 2, 27 * 2 + 40)
_SECTORS_OFFSET = 60 * 2


class DiskError(Exception):
    """Raised when a disk image or partition table cannot be used."""


class Disk:
    """An in-memory disk image addressed in 512-byte sectors."""

    def __init__(self, data: bytes | bytearray = b"", name: str = "sda") -> None:
        if len(data) % SECTOR_SIZE:
            raise DiskError(
                f"disk image size {len(data)} is not a multiple of {SECTOR_SIZE}"
            )
        self.data = bytearray(data)
        self.name = name

    @classmethod
    def from_file(cls, path: str | Path, name: str = "sda") -> Disk:
        """Load a disk image from a file."""
        return cls(Path(path).read_bytes(), name)

    @property
    def sector_count(self) -> int:
        return len(self.data) // SECTOR_SIZE

    def _check_range(self, lba: int, count: int) -> None:
        if lba < 0 or count < 0 or lba + count > self.sector_count:
            raise DiskError(
                f"{self.name} access of {count} sectors at {lba} is out of range"
            )

    def read(self, lba: int, count: int = 1) -> bytes:
        """Return ``count`` sectors starting at ``lba``."""
        self._check_range(lba, count)
        start = lba * SECTOR_SIZE
        return bytes(self.data[start : start + count * SECTOR_SIZE])

    def write(self, lba: int, data: bytes | bytearray) -> None:
        """Write whole sectors starting at ``lba``."""
        if len(data) % SECTOR_SIZE:
            raise DiskError(f"write of {len(data)} bytes is not whole sectors")
        self._check_range(lba, len(data) // SECTOR_SIZE)
        start = lba * SECTOR_SIZE
        self.data[start : start + len(data)] = data

    def save(self, path: str | Path) -> None:
        """Write the image to a file."""
        Path(path).write_bytes(bytes(self.data))


@dataclass
class PartitionEntry:
    """One 16-byte entry of an MBR or EBR partition table."""

    bootable: int = 0
    start_head: int = 0
    start_sec: int = 0
    start_chs: int = 0
    fs_type: int = 0
    end_head: int = 0
    end_sec: int = 0
    end_chs: int = 0
    start_lba: int = 0
    sec_cnt: int = 0

    @classmethod
    def unpack(cls, raw: bytes) -> PartitionEntry:
        if len(raw) != PARTITION_ENTRY_SIZE:
            raise DiskError(f"partition entry must be {PARTITION_ENTRY_SIZE} bytes")
        return cls(*_ENTRY_FORMAT.unpack(raw))

    def pack(self) -> bytes:
        return _ENTRY_FORMAT.pack(
            self.bootable,
            self.start_head,
            self.start_sec,
            self.start_chs,
            self.fs_type,
            self.end_head,
            self.end_sec,
            self.end_chs,
            self.start_lba,
            self.sec_cnt,
        )


@dataclass
class Partition:
    """A partition found on a disk, with its absolute start sector."""

    name: str
    start_lba: int
    sec_cnt: int
    disk: Disk | None = field(default=None, repr=False, compare=False)


def parse_boot_sector(sector: bytes) -> list[PartitionEntry]:
    """Return the four partition table entries of a boot sector."""
    if len(sector) < SECTOR_SIZE:
        raise DiskError("boot sector is shorter than one sector")
    table = sector[
        PARTITION_TABLE_OFFSET : PARTITION_TABLE_OFFSET
        + PARTITION_ENTRY_SIZE * PARTITION_TABLE_ENTRIES
    ]
    return [
        PartitionEntry.unpack(table[offset : offset + PARTITION_ENTRY_SIZE])
        for offset in range(0, len(table), PARTITION_ENTRY_SIZE)
    ]


def build_boot_sector(entries: list[PartitionEntry]) -> bytes:
    """Build a boot sector holding up to four entries and the boot signature."""
    entries = list(entries)
    if len(entries) > PARTITION_TABLE_ENTRIES:
        raise DiskError("a partition table holds at most four entries")
    entries += [PartitionEntry()] * (PARTITION_TABLE_ENTRIES - len(entries))
    table = b"".join(entry.pack() for entry in entries)
    return bytes(PARTITION_TABLE_OFFSET) + table + struct.pack("<H", BOOT_SIGNATURE)


def scan_partitions(disk: Disk) -> list[Partition]:
    """Walk the MBR and the extended partition chain, in discovery order."""
    partitions: list[Partition] = []
    primary = 0
    logical = 0
    ext_base = 0
    visited: set[int] = set()

    def scan(ext_lba: int) -> None:
        nonlocal primary, logical, ext_base
        if ext_lba in visited:
            raise DiskError(f"partition table at sector {ext_lba} loops")
        visited.add(ext_lba)
        for entry in parse_boot_sector(disk.read(ext_lba, 1)):
            if entry.fs_type == EXTENDED_PARTITION:
                if ext_base:
                    scan(entry.start_lba + ext_base)
                else:
                    ext_base = entry.start_lba
                    scan(ext_base)
            elif entry.fs_type:
                if ext_lba == 0:
                    partitions.append(
                        Partition(
                            f"{disk.name}{primary + 1}",
                            entry.start_lba,
                            entry.sec_cnt,
                            disk,
                        )
                    )
                    primary += 1
                    if primary >= MAX_PRIMARY_PARTITIONS:
                        raise DiskError(f"{disk.name} has too many primary partitions")
                else:
                    if logical >= MAX_LOGICAL_PARTITIONS:
                        return
                    partitions.append(
                        Partition(
                            f"{disk.name}{logical + FIRST_LOGICAL_NUMBER}",
                            ext_lba + entry.start_lba,
                            entry.sec_cnt,
                            disk,
                        )
                    )
                    logical += 1
                    if logical >= MAX_LOGICAL_PARTITIONS:
                        return

    scan(0)
    return partitions


def swap_pairs(data: bytes) -> bytes:
    """Swap every pair of bytes, as ATA identify strings are stored."""
    if len(data) % 2:
        raise ValueError("byte string length must be even")
    swapped = bytearray(len(data))
    swapped[0::2] = data[1::2]
    swapped[1::2] = data[0::2]
    return bytes(swapped)


def _ata_string(raw: bytes) -> str:
    text = swap_pairs(raw).split(b"\0", 1)[0]
    return text.decode("ascii", errors="replace").strip()


def parse_identify(sector: bytes) -> dict:
    """Extract serial number, model, sector count and capacity from identify data."""
    if len(sector) < SECTOR_SIZE:
        raise DiskError("identify data is shorter than one sector")
    (sectors,) = struct.unpack_from("<I", sector, _SECTORS_OFFSET)
    return {
        "serial": _ata_string(sector[_SERIAL_SLICE]),
        "model": _ata_string(sector[_MODEL_SLICE]),
        "sectors": sectors,
        "capacity_mb": sectors * SECTOR_SIZE // 1024 // 1024,
    }


def describe_partition(partition: Partition) -> str:
    """One-line summary of a partition's name, start and size."""
    return (
        f"{partition.name}  start_lba:0x{partition.start_lba:x},"
        f"sec_cnt:0x{partition.sec_cnt:x}"
    )