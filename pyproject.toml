[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mountutil"
version = "0.1.0"
description = "Mount, unmount, format and resize filesystems on Linux by driving the standard system tools"
requires-python = ">=3.10"
dependencies = []
keywords = ["mount", "umount", "filesystem", "mkfs", "fsck", "resize2fs", "blkid", "mountinfo"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
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

[tool.hatch.build.targets.wheel]
packages = ["mountutil"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
