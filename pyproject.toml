[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "telfs"
version = "0.1.0"
description = "SQLite-backed filesystem metadata store with journaling, chunk dedup and gzipped snapshots"
requires-python = ">=3.10"
dependencies = []
keywords = ["filesystem", "metadata", "sqlite", "snapshot", "journal", "dedup"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
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

[tool.hatch.build.targets.wheel]
packages = ["telfs"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
