"""Small commands over the file system: cat and grep."""

from __future__ import annotations

import sys
from typing import Iterable, Iterator

from .disk import Disk, DiskError
from .filesystem import FileSystem
from .volume import FileSystemError


def contains(text: str, pattern: str) -> bool:
    """Whether ``pattern`` occurs anywhere in ``text``."""
    return pattern in text


def grep_lines(lines: Iterable[str], pattern: str) -> Iterator[tuple[int, str]]:
    """Yield the 1-based number and text of every line holding ``pattern``."""
    for number, line in enumerate(lines, start=1):
        text = line.rstrip("\r\n")
        if contains(text, pattern):
            yield number, text


def cat_main(argv: list[str] | None = None) -> int:
    """Print a file: ``cat IMAGE PATH [PARTITION]``."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) < 2:
        return 0
    image, path = args[0], args[1]
    partition = args[2] if len(args) > 2 else None
    try:
        fs = FileSystem(Disk.from_file(image), partition)
    except (OSError, DiskError, FileSystemError) as exc:
        print(f"can't open disk image {image}: {exc}", file=sys.stderr)
        return 1
    try:
        fd = fs.open(path)
    except (ValueError, FileSystemError):
        sys.stdout.write(f"can't open file {path}\n")
        return 0
    try:
        size = fs.files.seek(fd, 0, 3)
        fs.files.seek(fd, 0, 1)
        data = fs.files.read(fd, size)
    finally:
        fs.files.close(fd)
    if len(data) != size:
        sys.stdout.write(f"can't read file {path}\n")
        return 0
    text = data.split(b"\0", 1)[0].decode("utf-8", errors="replace")
    sys.stdout.write(text + "\n")
    return 0


def grep_main(argv: list[str] | None = None) -> int:
    """Print numbered lines of standard input holding a pattern: ``grep PATTERN``."""
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("usage: grep PATTERN", file=sys.stderr)
        return 1
    for number, text in grep_lines(sys.stdin, args[0]):
        sys.stdout.write(f"{number}:{text}\n")
    return 0