import pytest

from mmzzfs.disk import SECTOR_SIZE, Disk, Partition
from mmzzfs.volume import (
    BLOCK_SECTORS,
    BLOCK_SIZE,
    MAX_FILES_PER_PARTITION,
    SUPERBLOCK_MAGIC,
    Bitmap,
    BitmapKind,
    FileSystemError,
    SuperBlock,
    Volume,
    format_partition,
    is_formatted,
    mount,
)


@pytest.fixture
def disk():
    return Disk(bytes(4096 * SECTOR_SIZE), "sdb")


@pytest.fixture
def partition(disk):
    return Partition("sdb1", 64, 4000, disk)


def test_superblock_round_trip():
    sb = SuperBlock(sector_cnt=10, lba=3, data_lba=99)
    raw = sb.pack()
    assert len(raw) == SECTOR_SIZE
    assert SuperBlock.unpack(raw) == sb


def test_superblock_unpack_short():
    with pytest.raises(FileSystemError):
        SuperBlock.unpack(b"\0" * 10)


def test_bitmap_allocate_and_reset():
    bitmap = Bitmap(bytes(2))
    assert bitmap.allocate(3) == 0
    assert all(bitmap.test(i) for i in range(3))
    assert bitmap.allocate(1) == 3
    bitmap.reset(1)
    assert not bitmap.test(1)
    assert bitmap.allocate(1) == 1


def test_bitmap_full_raises():
    bitmap = Bitmap(b"\xff")
    with pytest.raises(FileSystemError):
        bitmap.allocate(1)


def test_bitmap_bit_order():
    bitmap = Bitmap(bytes(1))
    bitmap.set(0)
    assert bitmap.data == bytearray(b"\x01")


def test_bitmap_out_of_range():
    bitmap = Bitmap(bytes(1))
    with pytest.raises(IndexError):
        bitmap.test(8)


def test_format_layout(disk, partition):
    assert not is_formatted(disk, partition)
    sb = format_partition(disk, partition)
    assert is_formatted(disk, partition)
    assert sb.magic == SUPERBLOCK_MAGIC
    assert sb.inode_cnt == MAX_FILES_PER_PARTITION
    assert sb.sector_bitmap_lba == partition.start_lba + 2
    assert sb.inode_bitmap_lba == sb.sector_bitmap_lba + sb.sector_bitmap_sector_cnt
    assert sb.inode_table_lba == sb.inode_bitmap_lba + sb.inode_bitmap_sector_cnt
    assert sb.data_lba == sb.inode_table_lba + sb.inode_table_sector_cnt
    assert SuperBlock.unpack(disk.read(partition.start_lba + 1)) == sb


def test_format_bitmaps(disk, partition):
    sb = format_partition(disk, partition)
    volume = Volume(disk, partition)
    assert all(volume.block_bitmap.test(i) for i in range(BLOCK_SECTORS))
    assert not volume.block_bitmap.test(BLOCK_SECTORS)
    usable = partition.start_lba + partition.sec_cnt - sb.data_lba
    assert not volume.block_bitmap.test(usable - 1)
    assert volume.block_bitmap.test(usable)
    assert volume.inode_bitmap.test(0)
    assert not volume.inode_bitmap.test(1)


def test_format_root_directory(disk, partition):
    sb = format_partition(disk, partition)
    root = disk.read(sb.data_lba)
    assert root[:2] == b".\0"
    assert root[sb.dir_entry_size : sb.dir_entry_size + 3] == b"..\0"


def test_format_too_small(disk):
    with pytest.raises(FileSystemError):
        format_partition(disk, Partition("sdb1", 64, 100, disk))


def test_unformatted_volume_raises(disk, partition):
    with pytest.raises(FileSystemError):
        Volume(disk, partition)


def test_mount_formats_blank(disk, partition):
    volume = mount(disk, partition)
    assert volume.sb.magic == SUPERBLOCK_MAGIC
    assert is_formatted(disk, partition)


def test_allocations(disk, partition):
    volume = mount(disk, partition)
    assert volume.allocate_inode() == 1
    assert volume.allocate_block() == BLOCK_SECTORS
    assert volume.allocate_block() == 2 * BLOCK_SECTORS


def test_sync_persists_only_after_sync(disk, partition):
    volume = mount(disk, partition)
    inode = volume.allocate_inode()
    block = volume.allocate_block()
    assert not Volume(disk, partition).inode_bitmap.test(inode)
    volume.sync_bitmap(inode, BitmapKind.INODE)
    volume.sync_bitmap(block, BitmapKind.BLOCK)
    again = Volume(disk, partition)
    assert again.inode_bitmap.test(inode)
    assert all(again.block_bitmap.test(block + i) for i in range(BLOCK_SECTORS))


def test_free_block_and_inode(disk, partition):
    volume = mount(disk, partition)
    block = volume.allocate_block()
    inode = volume.allocate_inode()
    volume.free_block(block)
    volume.free_inode(inode)
    assert not any(volume.block_bitmap.test(block + i) for i in range(BLOCK_SECTORS))
    assert not volume.inode_bitmap.test(inode)
    assert volume.allocate_block() == block


def test_block_read_write(disk, partition):
    volume = mount(disk, partition)
    lba = volume.sb.data_lba + volume.allocate_block()
    volume.write_block(lba, b"hello")
    data = volume.read_block(lba)
    assert len(data) == BLOCK_SIZE
    assert data[:5] == b"hello"
    assert data[5:] == bytes(BLOCK_SIZE - 5)


def test_block_write_too_large(disk, partition):
    volume = mount(disk, partition)
    with pytest.raises(FileSystemError):
        volume.write_block(volume.sb.data_lba, bytes(BLOCK_SIZE + 1))