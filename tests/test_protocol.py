import struct

import pytest

from tinytorrent.bencode import decode, encode
from tinytorrent.protocol import (
    EXTENSION_MESSAGE_ID,
    PIECE_MESSAGE_ID,
    REQUEST_MESSAGE_ID,
    SERVER_PEER_ID,
    UT_METADATA_EXTENSION_ID,
    ExtensionHandshake,
    Handshake,
    PieceMessage,
    ProtocolError,
    metadata_request_message,
    parse_metadata_message,
    request_message,
)

INFO_HASH = bytes(range(20))
PEER_ID = b"abcdefghijklmnopqrst"


@pytest.mark.parametrize("extensions", [True, False])
def test_handshake_round_trip(extensions):
    original = Handshake(INFO_HASH, PEER_ID, extensions)
    assert Handshake.from_bytes(original.to_bytes()) == original


def test_handshake_layout():
    data = Handshake(INFO_HASH, PEER_ID, True).to_bytes()
    assert len(data) == 68
    assert data.startswith(b"\x13BitTorrent protocol")
    assert data[25] == 1 << 4
    assert data[28:48] == INFO_HASH
    assert data[48:] == PEER_ID


def test_handshake_without_extensions_has_zero_reserved():
    data = Handshake(INFO_HASH, PEER_ID).to_bytes()
    assert data[20:28] == bytes(8)


def test_handshake_too_short():
    with pytest.raises(ProtocolError):
        Handshake.from_bytes(b"\x13BitTorrent protocol")


def test_server_peer_id_is_lowercase_letters():
    assert len(SERVER_PEER_ID) == 20
    assert SERVER_PEER_ID.isalpha() and SERVER_PEER_ID.islower()


def test_extension_handshake_default_bytes():
    data = ExtensionHandshake().to_bytes()
    assert data == b"\x00\x00\x00\x1a\x14\x00d1:md11:ut_metadatai1eee"


def test_extension_handshake_length_prefix_matches():
    data = ExtensionHandshake({"ut_metadata": 3, "ut_pex": 7}).to_bytes()
    (length,) = struct.unpack(">I", data[:4])
    assert length == len(data) - 4


def test_extension_handshake_round_trip():
    original = ExtensionHandshake({"ut_metadata": 3, "ut_pex": 7})
    parsed = ExtensionHandshake.from_bytes(original.to_bytes()[4:])
    assert parsed == original


def test_extension_handshake_without_m_is_empty():
    parsed = ExtensionHandshake.from_bytes(bytes([20, 0]) + encode({"v": "x"}))
    assert parsed.extension_map == {}


@pytest.mark.parametrize(
    "data",
    [
        b"\x14",
        bytes([5, 0]) + encode({"m": {}}),
        bytes([20, 1]) + encode({"m": {}}),
        bytes([20, 0]) + encode([1, 2]),
        bytes([20, 0]) + encode({"m": [1]}),
        bytes([20, 0]) + encode({"m": {"ut_metadata": "one"}}),
        bytes([20, 0]) + b"d1:m",
    ],
)
def test_extension_handshake_errors(data):
    with pytest.raises(ProtocolError):
        ExtensionHandshake.from_bytes(data)


def test_piece_message_parse():
    data = struct.pack(">BII", PIECE_MESSAGE_ID, 4, 16384) + b"payload"
    message = PieceMessage.from_bytes(data)
    assert message == PieceMessage(piece_index=4, begin=16384, block=b"payload")


def test_piece_message_empty_block():
    message = PieceMessage.from_bytes(struct.pack(">BII", PIECE_MESSAGE_ID, 1, 2))
    assert message.block == b""


def test_piece_message_too_short():
    with pytest.raises(ProtocolError):
        PieceMessage.from_bytes(bytes([PIECE_MESSAGE_ID, 0, 0, 0]))


def test_piece_message_wrong_id():
    with pytest.raises(ProtocolError):
        PieceMessage.from_bytes(struct.pack(">BII", 6, 0, 0))


def test_request_message_fields():
    data = request_message(1, 2, 3)
    assert len(data) == 13
    assert struct.unpack(">BIII", data) == (REQUEST_MESSAGE_ID, 1, 2, 3)


def test_metadata_request_message():
    data = metadata_request_message(3, 5)
    assert data[:2] == bytes([EXTENSION_MESSAGE_ID, 3])
    assert decode(data[2:]) == {"msg_type": 0, "piece": 5}


def _metadata_message(info, *, msg_type=1, piece=0, size_delta=0, ext_id=None):
    info_bytes = encode(info)
    header = encode(
        {"msg_type": msg_type, "piece": piece, "total_size": len(info_bytes) + size_delta}
    )
    ident = UT_METADATA_EXTENSION_ID if ext_id is None else ext_id
    return bytes([EXTENSION_MESSAGE_ID, ident]) + header + info_bytes


def test_parse_metadata_message_returns_info():
    info = {"length": 10, "name": b"file.txt", "piece length": 4, "pieces": b"x" * 20}
    assert parse_metadata_message(0, _metadata_message(info)) == info


@pytest.mark.parametrize(
    "kwargs",
    [
        {"msg_type": 2},
        {"piece": 1},
        {"size_delta": 1},
        {"ext_id": 2},
    ],
)
def test_parse_metadata_message_rejects(kwargs):
    info = {"length": 1, "name": b"a"}
    with pytest.raises(ProtocolError):
        parse_metadata_message(0, _metadata_message(info, **kwargs))


def test_parse_metadata_message_too_short():
    with pytest.raises(ProtocolError):
        parse_metadata_message(0, bytes([EXTENSION_MESSAGE_ID]))


def test_parse_metadata_message_missing_key():
    data = bytes([EXTENSION_MESSAGE_ID, 1]) + encode({"msg_type": 1, "piece": 0})
    with pytest.raises(ProtocolError):
        parse_metadata_message(0, data)


def test_parse_metadata_message_non_dict_payload():
    payload = encode([1])
    data = (
        bytes([EXTENSION_MESSAGE_ID, 1])
        + encode({"msg_type": 1, "piece": 0, "total_size": len(payload)})
        + payload
    )
    with pytest.raises(ProtocolError):
        parse_metadata_message(0, data)