import hashlib
import string

from tinytorrent.utils import bytes_to_hex, random_peer_id, sha1_hash, write_file


def test_bytes_to_hex_value():
    assert bytes_to_hex(b"\x00\xff") == "00ff"


def test_bytes_to_hex_round_trip():
    data = bytes(range(256))
    assert bytes.fromhex(bytes_to_hex(data)) == data


def test_bytes_to_hex_empty():
    assert bytes_to_hex(b"") == ""


def test_write_file_creates_parents(tmp_path):
    target = tmp_path / "a" / "b" / "out.bin"
    write_file(target, b"payload")
    assert target.read_bytes() == b"payload"


def test_write_file_overwrites(tmp_path):
    target = tmp_path / "out.bin"
    write_file(str(target), b"first content")
    write_file(str(target), b"second")
    assert target.read_bytes() == b"second"


def test_sha1_hash_empty():
    assert sha1_hash(b"").hex() == "da39a3ee5e6b4b0d3255bfef95601890afd80709"


def test_sha1_hash_matches_hashlib():
    data = b"some piece data" * 100
    digest = sha1_hash(data)
    assert digest == hashlib.sha1(data).digest()
    assert len(digest) == 20


def test_random_peer_id_shape():
    peer_id = random_peer_id()
    assert len(peer_id) == 20
    assert all(chr(b) in string.ascii_lowercase for b in peer_id)