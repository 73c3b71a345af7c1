import http.server
import socket
import threading

import pytest

from tinytorrent import cli
from tinytorrent.bencode import decode, encode, to_display
from tinytorrent.downloader import format_info
from tinytorrent.torrent import TorrentFileInfo

TRACKER = "http://tracker.example.com/announce"
INFO_HEX = "d69f91e6b2ae4c542468d1073a71d4ea13879a7f"


def _write_torrent(tmp_path, tracker=TRACKER, pieces=b"a" * 20 + b"b" * 20):
    meta = {
        "announce": tracker,
        "info": {
            "length": 40000,
            "name": "sample.txt",
            "piece length": 32768,
            "pieces": pieces,
        },
    }
    path = tmp_path / "sample.torrent"
    path.write_bytes(encode(meta))
    return path


def test_main_without_arguments(capsys):
    assert cli.main([]) == 1
    assert capsys.readouterr().out.strip() == "no arguments provided"


def test_main_unknown_command(capsys):
    assert cli.main(["frobnicate"]) == 1
    assert capsys.readouterr().out.strip() == "unknown command: frobnicate"


def test_decode_string(capsys):
    assert cli.main(["decode", "5:hello"]) == 0
    assert capsys.readouterr().out == '"hello"\n'


def test_decode_integer(capsys):
    assert cli.main(["decode", "i-52e"]) == 0
    assert capsys.readouterr().out.strip() == "-52"


@pytest.mark.parametrize(
    "data", ["l5:helloi52ee", "d3:foo3:bar5:helloi52ee", "lli4eei5ee", "de"]
)
def test_decode_matches_display(capsys, data):
    assert cli.handle_decode([data]) == 0
    assert capsys.readouterr().out.strip() == to_display(decode(data))


def test_decode_error(capsys):
    assert cli.handle_decode(["i52"]) == 1
    assert capsys.readouterr().out.startswith("error decoding the passed data")


def test_decode_without_data(capsys):
    assert cli.handle_decode([]) == 1
    assert capsys.readouterr().out.startswith("no data passed to decode")


def test_info_prints_summary(capsys, tmp_path):
    path = _write_torrent(tmp_path)
    assert cli.main(["info", str(path)]) == 0
    out = capsys.readouterr().out
    assert out == format_info(TorrentFileInfo.from_file(path)) + "\n"
    lines = out.splitlines()
    assert lines[0] == f"Tracker URL: {TRACKER}"
    assert lines[-2:] == [(b"a" * 20).hex(), (b"b" * 20).hex()]


def test_info_argument_count(capsys, tmp_path):
    assert cli.handle_info([]) == 1
    assert capsys.readouterr().out.startswith("no data passed to info")
    assert cli.handle_info(["a", "b"]) == 1
    assert capsys.readouterr().out.startswith("too many arguments passed to info")


def test_info_missing_file(capsys, tmp_path):
    assert cli.handle_info([str(tmp_path / "missing.torrent")]) == 1
    assert capsys.readouterr().out.startswith("error creating TorrentFileInfo")


def test_magnet_parse(capsys):
    link = (
        f"magnet:?xt=urn:btih:{INFO_HEX}&dn=sample.txt"
        "&tr=http%3A%2F%2Ftracker.example.com%2Fannounce"
    )
    assert cli.main(["magnet_parse", link]) == 0
    assert capsys.readouterr().out.splitlines() == [
        f"Tracker URL: {TRACKER}",
        f"Info Hash: {INFO_HEX}",
    ]


def test_magnet_parse_rejects_bad_prefix(capsys):
    assert cli.handle_magnet_parse(["http://tracker.example.com"]) == 1
    assert capsys.readouterr().out.startswith("error creating MagnetURI")


@pytest.mark.parametrize(
    "handler",
    [
        cli.handle_magnet_parse,
        cli.handle_magnet_handshake,
        cli.handle_magnet_info,
    ],
)
def test_magnet_commands_need_one_argument(capsys, handler):
    assert handler([]) == 1
    assert "incorrect arguments passed" in capsys.readouterr().out


@pytest.mark.parametrize(
    "handler, args",
    [
        (cli.handle_download_piece, ["-x", "out", "file", "0"]),
        (cli.handle_download, ["out", "file"]),
        (cli.handle_magnet_download_piece, ["-o", "out"]),
        (cli.handle_magnet_download, ["-o", "out"]),
    ],
)
def test_download_usage(capsys, handler, args):
    assert handler(args) == 1
    assert "usage: tinytorrent" in capsys.readouterr().out


def test_download_piece_index_out_of_range(capsys, tmp_path):
    path = _write_torrent(tmp_path)
    out_file = tmp_path / "piece"
    assert cli.handle_download_piece(["-o", str(out_file), str(path), "5"]) == 1
    assert capsys.readouterr().out.strip() == "piece index out of range: 5"
    assert not out_file.exists()


def test_download_piece_index_not_a_number(capsys, tmp_path):
    path = _write_torrent(tmp_path)
    assert cli.handle_download_piece(["-o", str(tmp_path / "p"), str(path), "x"]) == 1
    assert capsys.readouterr().out.startswith("error converting piece index to int")


def test_handshake_bad_address(capsys, tmp_path):
    path = _write_torrent(tmp_path)
    assert cli.handle_handshake([str(path), "nocolon"]) == 1
    assert capsys.readouterr().out.startswith("error creating peer")


def test_handshake_with_local_peer(capsys, tmp_path):
    path = _write_torrent(tmp_path)
    remote_id = b"abcdefghij0123456789"
    received = {}

    server = socket.socket()
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    port = server.getsockname()[1]

    def serve():
        conn, _ = server.accept()
        with conn:
            data = b""
            while len(data) < 68:
                data += conn.recv(68 - len(data))
            received["data"] = data
            conn.sendall(data[:48] + remote_id)

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    try:
        assert cli.handle_handshake([str(path), f"127.0.0.1:{port}"]) == 0
    finally:
        thread.join(timeout=5)
        server.close()

    assert capsys.readouterr().out.strip() == f"Peer ID: {remote_id.hex()}"
    info = TorrentFileInfo.from_file(path)
    assert received["data"][28:48] == info.info_hash


def test_peers_from_local_tracker(capsys, tmp_path):
    compact = bytes([127, 0, 0, 1, 0x1A, 0xE1, 10, 0, 0, 2, 0x00, 0x50])
    body = encode({"interval": 60, "peers": compact})

    class Handler(http.server.BaseHTTPRequestHandler):
        def do_GET(self):
            self.send_response(200)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, *args):
            pass

    server = http.server.HTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        url = f"http://127.0.0.1:{server.server_address[1]}/announce"
        path = _write_torrent(tmp_path, tracker=url)
        assert cli.main(["peers", str(path)]) == 0
    finally:
        server.shutdown()
        server.server_close()

    assert capsys.readouterr().out.splitlines() == ["127.0.0.1:6881", "10.0.0.2:80"]


def test_peers_argument_count(capsys):
    assert cli.handle_peers([]) == 1
    assert capsys.readouterr().out.startswith("no data passed to peers")
    assert cli.handle_peers(["a", "b"]) == 1
    assert capsys.readouterr().out.startswith("too many arguments passed to peers")