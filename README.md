# mmzzfs

`mmzzfs` is a small inode file system that works on raw disk images. The
images are held in memory and can be loaded from and saved to ordinary files.
The package has no dependencies outside the standard library.

## What is in the package

- `mmzzfs.disk`
  - `Disk` is an in-memory image addressed in 512-byte sectors. It provides
    `read`, `write`, `save` and `Disk.from_file`, and raises `DiskError` on
    out-of-range access.
  - `parse_boot_sector` and `build_boot_sector` read and build MBR partition
    tables of `PartitionEntry` records.
  - `scan_partitions` walks the primary table and the extended-partition
    chain. It returns `Partition` objects named like `sdb1` to `sdb3` for
    primary partitions and `sdb5` upwards for logical ones.
  - `parse_identify` decodes ATA IDENTIFY data into a dict with the keys
    `serial`, `model`, `sectors` and `capacity_mb`.
  - `describe_partition` gives a one-line summary of a partition.
- `mmzzfs.volume`
  - `format_partition` lays out the super block, the block bitmap, the inode
    bitmap, the inode table and a root directory holding `.` and `..`.
  - `is_formatted` checks the super block magic.
  - `mount` formats the partition when needed and returns a `Volume`. A
    `Volume` holds the `SuperBlock` and the two `Bitmap`s in memory.
- `mmzzfs.inode`
  - `Inode` records can be packed to and unpacked from their on-disk form.
  - `InodeTable` opens, writes, closes and recycles inodes, and shares inodes
    that are already open.
  - Each file has twelve direct blocks and one single-indirect block of
    4096-byte blocks.
- `mmzzfs.directory`
  - `Directory` lists `entries()`, finds entries with `search(name)` and adds
    entries with `add_entry(entry)`.
  - A `DirEntry` holds a name of at most 16 bytes, an inode index and a
    `FileType`.
- `mmzzfs.files`
  - `FileTable` is the table of open descriptors, numbered from 2 up to 63.
    It provides `create`, `open`, `read`, `write`, `seek` and `close`.
  - Only one descriptor at a time may have an inode open for writing.
  - `seek` uses the whence values `SEEK_SET = 1`, `SEEK_CUR = 2` and
    `SEEK_END = 3`.
  - `parent_index` and `entry_name` look up parent directories and entry
    names.
- `mmzzfs.filesystem`
  - `FileSystem(disk, partition_name)` scans the disk and formats every
    unformatted partition. It then mounts the named partition, or the first
    one if no name is given.
  - `FileSystem` provides `search(path, keep_open)`, which returns a
    `SearchResult`, as well as `open`, `read_file`, `write_file` and
    `delete_entry`.
  - `preprocess_path` accepts only absolute paths made of ASCII letters,
    digits, `_`, `.` and `/`, and strips trailing slashes.
  - `parse_path` splits off the first component of a path.
- `mmzzfs.keyboard`
  - `Keyboard` turns PC scan codes into `KeyCode` values. It tracks Shift,
    Caps Lock and Ctrl, decodes the `0xE0`-prefixed arrow keys, and maps
    Ctrl+Z/C/L/U to function keys.
  - `Keyboard.read(count)` returns the converted bytes.
  - The helpers are `translate_scancode`, `convert_key`, `combine_keys` and
    `is_function_key`.
- `mmzzfs.tools`: the `cat` and `grep` commands, plus `contains` and
  `grep_lines`.

## Installation

```
pip install .
```

For the tests:

```
pip install .[test]
pytest
```

## Working with a disk image

```python
from mmzzfs.disk import Disk
from mmzzfs.filesystem import FileSystem

disk = Disk.from_file("hd80M.img", "sdb")
fs = FileSystem(disk, "sdb1")          # formats unformatted partitions first
fs.write_file("/notes.txt", b"hello from mmzzfs\n")
print(fs.read_file("/notes.txt").decode())

disk.save("hd80M.img")                 # changes live in memory until saved
```

`write_file` writes from the start of the file and creates the file when it
does not exist. Opening a path whose parent directory is missing raises
`FileSystemError`, and so does opening a missing file without
`OpenFlag.CREATE`.

## Decoding keystrokes

```python
from mmzzfs.keyboard import Keyboard

keyboard = Keyboard(4096)
for scancode in (0x2A, 0x23, 0xAA, 0x17, 0x97):   # Shift+h, then i
    keyboard.feed(scancode)
print(keyboard.read(2))                            # b'Hi'
```

## Command-line tools

```
mmzzfs-cat IMAGE PATH [PARTITION]
```

This loads the disk image `IMAGE` and mounts `PARTITION`, or the first
partition if none is given. It then prints the file at `PATH` up to its first
NUL byte. If the file cannot be opened, it prints `can't open file PATH`. Any
formatting the command does happens in memory only: the image file is not
written back.

```
mmzzfs-grep PATTERN
```

This reads lines from standard input. Each line that contains `PATTERN` as a
plain substring is printed, prefixed by its line number (`3:text`).

## What it does not do

- There is no way to create subdirectories. Directories other than the root
  can be searched if they already exist on the image, but the package never
  makes one.
- There is no command or function that removes a file in one step.
  `FileSystem.delete_entry` only clears the directory entry. Freeing the
  inode and its blocks is a separate call to `InodeTable.recycle`.
- The package works only on disk images, never on real drives or keyboards:
  `Keyboard` decodes scan codes that you feed to it.