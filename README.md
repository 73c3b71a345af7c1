# tinytorrent

A small BitTorrent client for the command line, built on the standard
library alone. It can:

- decode bencoded values
- show what a single-file `.torrent` file holds
- ask an HTTP tracker for peers
- handshake with a peer, including the `ut_metadata` extension used by magnet links
- download one piece or a whole file, from a torrent file or a magnet link

## Installation

```
pip install .
```

This installs the `tinytorrent` command.

## Command-line use

```
tinytorrent decode <bencoded-value>
tinytorrent info <torrent-file>
tinytorrent peers <torrent-file>
tinytorrent handshake <torrent-file> <host:port>
tinytorrent download_piece -o <output-file> <torrent-file> <piece-index>
tinytorrent download -o <output-file> <torrent-file>
tinytorrent magnet_parse <magnet-link>
tinytorrent magnet_handshake <magnet-link>
tinytorrent magnet_info <magnet-link>
tinytorrent magnet_download_piece -o <output-file> <magnet-link> <piece-index>
tinytorrent magnet_download -o <output-file> <magnet-link>
```

The command exits with status 0 on success and 1 on any error; error
messages are printed to standard output.

```
$ tinytorrent decode 'd3:foo3:bar5:helloi52ee'
{"foo":"bar","hello":52}
```

- `info` prints the tracker URL, the file length, the info hash, the piece
  length and the SHA-1 hash of each piece. `magnet_info` prints the same
  summary, with the info dictionary fetched from the first peer through the
  metadata extension.
- `peers` prints one `ip:port` line per peer in the tracker's compact reply,
  without connecting to them.
- `handshake` and `magnet_handshake` print the remote `Peer ID` in hex;
  `magnet_handshake` also prints the peer's metadata extension ID.
- `magnet_parse` prints the tracker URL and the info hash of the link.
- `download_piece` and `magnet_download_piece` fetch one piece from the first
  peer, retrying on that peer until the piece's hash verifies, and write it to
  the output file, creating parent directories.
- `download` and `magnet_download` connect to every peer the tracker returns,
  run one worker thread per peer, put failed pieces back on the queue after
  half a second, and write the joined pieces to the output file.

Magnet links announce a fixed 999 bytes left to the tracker, as the file size
is not known until the metadata arrives.

## Library use

- `tinytorrent.bencode`: `decode`, `decode_partial`, `encode`, `to_display`
  and `BencodeError`. Byte strings decode to `bytes`, dictionaries to `dict`
  with `str` keys; `encode` writes keys in sorted byte order.
- `tinytorrent.torrent`: `TorrentFileInfo` (`from_bytes`, `from_file`,
  `from_magnet`, `hex_info_hash`), `InfoDict` (`from_dict`, `piece_size`) and
  `split_piece_hashes`.
- `tinytorrent.magnet`: `MagnetURI.parse`, understanding the `xt`, `tr` and
  `dn` parameters.
- `tinytorrent.tracker`: `TrackerRequest` (`url`, `send`) and
  `TrackerResponse.parse`.
- `tinytorrent.peer`: `Peer`, a context manager over a TCP connection, with
  the handshake, bitfield, interested/unchoke, piece download and metadata
  exchanges.
- `tinytorrent.protocol`: `Handshake`, `ExtensionHandshake`, `PieceMessage`,
  `request_message`, `metadata_request_message` and `parse_metadata_message`.
- `tinytorrent.pieces`: `StoredPiece`, which tracks the 16 KiB blocks of a
  piece and verifies its hash.
- `tinytorrent.downloader`: `get_peers`, `get_peers_for_torrent`,
  `format_info` and `download_pieces`.

```python
from tinytorrent.bencode import decode, encode
from tinytorrent.torrent import TorrentFileInfo

value = decode(b"l4:spami42ee")          # [b"spam", 42]
assert encode(value) == b"l4:spami42ee"

info = TorrentFileInfo.from_file("sample.torrent")
print(info.tracker_url, info.hex_info_hash())
```

Peers log their progress through the standard `logging` module under the
`tinytorrent.peer` logger; the command does not configure logging, so these
messages are not shown unless you do.

## What it does not do

- It only downloads; it never uploads, seeds or accepts incoming connections.
- Only single-file torrents are read: the info dictionary must have a
  `length` key.
- Only HTTP trackers with compact IPv4 peer lists are supported.
- Metadata for magnet links is fetched as a single metadata piece (piece 0).
- Peers are assumed to hold every piece; bitfield contents are not read.

## Running the tests

```
pip install .[test]
pytest
```