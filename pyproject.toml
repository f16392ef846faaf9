[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mmzzfs"
version = "0.1.0"
description = "A small inode file system on raw disk images, with MBR partition scanning, a scancode keyboard decoder and cat/grep tools"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "filesystem",
    "disk-image",
    "inode",
    "mbr",
    "partition",
    "bitmap",
    "keyboard",
    "scancode",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mmzzfs-cat = "mmzzfs.tools:cat_main"
mmzzfs-grep = "mmzzfs.tools:grep_main"

[tool.hatch.build.targets.wheel]
packages = ["mmzzfs"]

[tool.hatch.build.targets.sdist]
include = ["mmzzfs", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
