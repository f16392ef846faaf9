import pytest

from mmzzfs.directory import Directory, FileType
from mmzzfs.disk import SECTOR_SIZE, Disk, Partition
from mmzzfs.files import (
    SEEK_CUR,
    SEEK_END,
    SEEK_SET,
    STD_FD_CNT,
    FileTable,
    FileTableError,
    OpenFlag,
    entry_name,
    parent_index,
)
from mmzzfs.inode import InodeTable
from mmzzfs.volume import BLOCK_SIZE, Volume, format_partition

SECTORS = 4096


@pytest.fixture
def table():
    disk = Disk(bytes(SECTORS * SECTOR_SIZE), "sdb")
    partition = Partition("sdb1", 0, SECTORS, disk)
    format_partition(disk, partition)
    return InodeTable(Volume(disk, partition))


@pytest.fixture
def root(table):
    return Directory(table, table.open(0), is_root=True)


@pytest.fixture
def files(table):
    return FileTable(table)


def test_first_descriptor_follows_std_streams(files, root):
    assert files.create(root, "a.txt") == STD_FD_CNT


def test_create_adds_file_entry(files, root):
    files.create(root, "a.txt")
    entry = root.search("a.txt")
    assert entry.filetype is FileType.FILE
    assert files.table.volume.inode_bitmap.test(entry.index)


def test_write_then_read(files, root):
    fd = files.create(root, "a.txt")
    assert files.write(fd, b"hello") == 5
    assert files.seek(fd, 0, SEEK_SET) == 0
    assert files.read(fd, 5) == b"hello"


def test_read_past_end_is_empty(files, root):
    fd = files.create(root, "a.txt")
    files.write(fd, b"abc")
    assert files.read(fd, 10) == b""


def test_multi_block_round_trip(files, root):
    data = bytes(range(256)) * (3 * BLOCK_SIZE // 256 + 5)
    fd = files.create(root, "big")
    assert files.write(fd, data) == len(data)
    files.close(fd)
    index = root.search("big").index
    fd = files.open(index)
    assert files.read(fd, len(data) + 100) == data


def test_indirect_blocks(files, root):
    data = b"xyz" * ((13 * BLOCK_SIZE + 10) // 3)
    fd = files.create(root, "huge")
    assert files.write(fd, data) == len(data)
    inode = files.get(fd).inode
    assert inode.sectors[12] > inode.sectors[11]
    files.close(fd)
    fresh = FileTable(InodeTable(files.table.volume))
    fd = fresh.open(root.search("huge").index)
    assert fresh.read(fd, len(data)) == data


def test_overwrite_in_middle(files, root):
    fd = files.create(root, "a.txt")
    files.write(fd, b"hello world")
    files.seek(fd, 6, SEEK_SET)
    files.write(fd, b"WORLD")
    assert files.seek(fd, 0, SEEK_END) == 11
    files.seek(fd, 0, SEEK_SET)
    assert files.read(fd, 100) == b"hello WORLD"


def test_seek_bounds(files, root):
    fd = files.create(root, "a.txt")
    files.write(fd, b"abcdef")
    assert files.seek(fd, -2, SEEK_CUR) == 4
    assert files.read(fd, 10) == b"ef"
    with pytest.raises(FileTableError):
        files.seek(fd, -1, SEEK_SET)
    with pytest.raises(FileTableError):
        files.seek(fd, 1, SEEK_END)


def test_single_writer(files, root):
    files.close(files.create(root, "a.txt"))
    index = root.search("a.txt").index
    writer = files.open(index, OpenFlag.WRONLY)
    with pytest.raises(FileTableError):
        files.open(index, OpenFlag.RDWR)
    reader = files.open(index, OpenFlag.RDONLY)
    assert files.get(reader).inode is files.get(writer).inode
    files.close(writer)
    again = files.open(index, OpenFlag.WRONLY)
    assert files.get(again).inode.write_deny is True


def test_table_full_rolls_back(table, root):
    files = FileTable(table, capacity=STD_FD_CNT + 1)
    files.create(root, "a")
    first = root.search("a").index
    with pytest.raises(FileTableError):
        files.create(root, "b")
    assert root.search("b") is None
    assert not table.volume.inode_bitmap.test(first + 1)


def test_unknown_descriptor(files):
    with pytest.raises(FileTableError):
        files.close(STD_FD_CNT)
    with pytest.raises(FileTableError):
        files.read(STD_FD_CNT, 1)


def test_close_releases_inode(files, root, table):
    fd = files.create(root, "a.txt")
    index = files.get(fd).inode.index
    files.close(fd)
    assert table.find_open(index) is None


def test_parent_index_of_root(root):
    assert parent_index(root) == 0


def test_entry_name(files, root, table):
    files.create(root, "a.txt")
    index = root.search("a.txt").index
    assert entry_name(table, 0, index) == ("a.txt", 0)
    assert entry_name(table, 0, 4000) == ("", 0)