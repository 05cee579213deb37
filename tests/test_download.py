import gzip
import os

import pytest

from rootshare import config
from rootshare.app.models.transfer import ByteRange, RangeKind, RangeOutcome, TransportStrategy
from rootshare.app.services.download_engine import accepts_gzip, choose_strategy, content_disposition

IDENTITY = {"Accept-Encoding": "identity"}

TEN_BYTES = b"0123456789"


@pytest.fixture
def ten_byte_file(root_dir):
    (root_dir / "ten.bin").write_bytes(TEN_BYTES)
    return root_dir / "ten.bin"


def test_strategy_full_small_file_is_mapped():
    full = RangeOutcome(RangeKind.FULL)
    assert choose_strategy(full, 10, gzip_accepted=False) == TransportStrategy.MAPPED


def test_strategy_full_large_file_is_streamed():
    full = RangeOutcome(RangeKind.FULL)
    size = config.MMAP_THRESHOLD
    assert choose_strategy(full, size, gzip_accepted=False) == TransportStrategy.BUFFERED_FULL


def test_strategy_full_with_gzip_is_compressed():
    full = RangeOutcome(RangeKind.FULL)
    assert choose_strategy(full, 10, gzip_accepted=True) == TransportStrategy.COMPRESSED_STREAM


def test_strategy_partial_ignores_compression():
    small = RangeOutcome(RangeKind.PARTIAL, ByteRange(0, 99))
    large = RangeOutcome(RangeKind.PARTIAL, ByteRange(0, config.SMALL_RANGE_THRESHOLD))
    assert choose_strategy(small, 10**9, gzip_accepted=True) == TransportStrategy.BUFFERED_RANGE
    assert choose_strategy(large, 10**9, gzip_accepted=True) == TransportStrategy.STREAMED_RANGE


def test_strategy_rejects_unservable_outcomes():
    with pytest.raises(ValueError):
        choose_strategy(RangeOutcome(RangeKind.UNSATISFIABLE), 10, gzip_accepted=False)


@pytest.mark.parametrize(
    "header, expected",
    [
        (None, False),
        ("", False),
        ("identity", False),
        ("gzip", True),
        ("deflate, gzip;q=0.5", True),
        ("gzip;q=0", False),
        ("*", True),
        ("gzip;q=0, *", False),
        ("br, *;q=0", False),
    ],
)
def test_accepts_gzip(header, expected):
    assert accepts_gzip(header) is expected


def test_content_disposition_escapes_and_encodes():
    value = content_disposition('rép "1".txt')
    assert value == "attachment; filename=\"r_p \\\"1\\\".txt\"; filename*=UTF-8''r%C3%A9p%20%221%22.txt"


def test_full_download(client, ten_byte_file):
    response = client.get("/ten.bin", headers=IDENTITY)
    assert response.status_code == 200
    assert response.content == TEN_BYTES
    assert response.headers["content-length"] == "10"
    assert response.headers["accept-ranges"] == "bytes"
    assert response.headers["x-file-size"] == "10"
    assert response.headers["content-type"] == "application/octet-stream"
    assert response.headers["content-disposition"].startswith('attachment; filename="ten.bin"')


def test_content_type_is_inferred_from_extension(client, root_dir):
    (root_dir / "data.json").write_bytes(b'{"key": "value"}')
    response = client.get("/data.json", headers=IDENTITY)
    assert response.headers["content-type"].startswith("application/json")


def test_empty_file_download(client, root_dir):
    (root_dir / "empty.txt").write_bytes(b"")
    response = client.get("/empty.txt", headers=IDENTITY)
    assert response.status_code == 200
    assert response.content == b""


def test_large_file_is_streamed(client, root_dir, monkeypatch):
    monkeypatch.setattr(config, "MMAP_THRESHOLD", 16)
    monkeypatch.setattr(config, "STREAM_BUFFER_SIZE", 7)
    content = os.urandom(100)
    (root_dir / "big.bin").write_bytes(content)

    response = client.get("/big.bin", headers=IDENTITY)
    assert response.status_code == 200
    assert response.content == content
    assert response.headers["content-length"] == "100"


def test_gzip_download(client, root_dir):
    content = b"compress me " * 1000
    (root_dir / "text.txt").write_bytes(content)

    response = client.get("/text.txt", headers={"Accept-Encoding": "gzip"})
    assert response.status_code == 200
    assert response.headers["content-encoding"] == "gzip"
    assert response.headers["vary"] == "Accept-Encoding"
    assert "content-length" not in response.headers
    assert response.headers["x-file-size"] == str(len(content))
    # httpx decodes transparently
    assert response.content == content


def test_gzip_body_is_valid_gzip(client, root_dir):
    content = os.urandom(5000)
    (root_dir / "random.bin").write_bytes(content)

    with client.stream("GET", "/random.bin", headers={"Accept-Encoding": "gzip"}) as response:
        raw = b"".join(response.iter_raw())
    assert gzip.decompress(raw) == content


def test_range_scenario(client, ten_byte_file):
    response = client.get("/ten.bin", headers={"Range": "bytes=2-5"})
    assert response.status_code == 206
    assert response.headers["content-range"] == "bytes 2-5/10"
    assert response.headers["content-length"] == "4"
    assert response.content == b"2345"
    assert "content-encoding" not in response.headers


def test_open_ended_range(client, ten_byte_file):
    response = client.get("/ten.bin", headers={"Range": "bytes=7-"})
    assert response.status_code == 206
    assert response.headers["content-range"] == "bytes 7-9/10"
    assert response.content == b"789"


def test_large_range_is_streamed(client, root_dir, monkeypatch):
    monkeypatch.setattr(config, "SMALL_RANGE_THRESHOLD", 4)
    monkeypatch.setattr(config, "STREAM_BUFFER_SIZE", 3)
    content = os.urandom(64)
    (root_dir / "big.bin").write_bytes(content)

    response = client.get("/big.bin", headers={"Range": "bytes=10-40"})
    assert response.status_code == 206
    assert response.headers["content-range"] == "bytes 10-40/64"
    assert response.headers["content-length"] == "31"
    assert response.content == content[10:41]


def test_unsatisfiable_range(client, ten_byte_file):
    response = client.get("/ten.bin", headers={"Range": "bytes=20-30"})
    assert response.status_code == 416
    assert response.headers["content-range"] == "bytes */10"
    assert response.content == b""


@pytest.mark.parametrize("header", ["bytes=0-1,4-5", "lines=1-2", "bytes=x-"])
def test_malformed_range(client, ten_byte_file, header):
    response = client.get("/ten.bin", headers={"Range": header})
    assert response.status_code == 400


def test_missing_file(client):
    response = client.get("/missing.txt")
    assert response.status_code == 404
    assert response.content == b""


def test_symlink_escape_download(client, root_dir, tmp_path):
    os.symlink(tmp_path / "secret.txt", root_dir / "secret-link.txt")
    response = client.get("/secret-link.txt", headers=IDENTITY)
    assert response.status_code in (403, 404)
    assert b"outside the root" not in response.content


def test_non_ascii_filename_download(client, root_dir):
    (root_dir / "日本語.txt").write_bytes(b"hi")
    response = client.get("/日本語.txt", headers=IDENTITY)
    assert response.status_code == 200
    assert response.content == b"hi"
    assert "filename*=UTF-8''%E6%97%A5%E6%9C%AC%E8%AA%9E.txt" in response.headers["content-disposition"]


def test_directory_listing(client, root_dir):
    (root_dir / "sub dir").mkdir()
    (root_dir / "a.txt").write_bytes(b"x" * 2048)
    (root_dir / ".upload-abc.tmp").write_bytes(b"partial")

    response = client.get("/")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    body = response.text
    assert 'href="/sub%20dir/"' in body
    assert 'href="/a.txt"' in body
    assert "2.0 KB" in body
    assert ".upload-abc.tmp" not in body
    # Directories are listed first
    assert body.index("sub dir/") < body.index("a.txt")


def test_nested_listing_escapes_names(client, root_dir):
    (root_dir / "docs").mkdir()
    (root_dir / "docs" / "<b>.txt").write_bytes(b"")

    response = client.get("/docs/")
    assert response.status_code == 200
    assert "&lt;b&gt;.txt" in response.text
    assert 'href="/docs/%3Cb%3E.txt"' in response.text
    assert 'href="/"' in response.text
