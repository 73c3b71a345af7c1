"""A small BitTorrent client: bencode, torrent files, magnet links, HTTP trackers and peers."""

__version__ = "0.1.0"