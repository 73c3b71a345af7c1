[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tinytorrent"
version = "0.1.0"
description = "A small BitTorrent client: bencode, torrent files, magnet links, HTTP trackers and piece downloads"
requires-python = ">=3.10"
dependencies = []
keywords = ["bittorrent", "torrent", "bencode", "magnet", "tracker", "peer-to-peer"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: File Sharing",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
tinytorrent = "tinytorrent.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["tinytorrent"]

[tool.pytest.ini_options]
addopts = "-ra"
