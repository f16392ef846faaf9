"""Inode file system on raw disk images, with partition scanning, keyboard decoding and cat/grep tools."""

__version__ = "0.1.0"

__all__ = ["disk", "keyboard", "volume", "inode", "directory", "files", "filesystem", "tools"]