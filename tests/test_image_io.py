import pytest
from PIL import Image

from conftest import image_bytes
from quickcrop.errors import DecodeFailure
from quickcrop.image_io import SourceFile, decode, is_image_source, release, unique_path


@pytest.mark.parametrize("fmt", ["PNG", "JPEG", "WEBP", "GIF", "BMP"])
def test_decode_reports_natural_size(fmt):
    decoded = decode(image_bytes(64, 48, fmt=fmt), f"sample.{fmt.lower()}")
    assert (decoded.natural_width, decoded.natural_height) == (64, 48)
    assert decoded.handle.size == (64, 48)
    release(decoded.handle)


@pytest.mark.parametrize("data", [b"", b"not an image at all", b"\x89PNG\r\n\x1a\n" + b"\0" * 16])
def test_decode_rejects_unreadable_bytes(data):
    with pytest.raises(DecodeFailure):
        decode(data, "broken.png")


def test_decode_rejects_truncated_image():
    data = image_bytes(200, 200, fmt="JPEG")
    with pytest.raises(DecodeFailure):
        decode(data[: len(data) // 3], "truncated.jpg")


@pytest.mark.parametrize("source, expected", [
    (SourceFile("photo.JPG", b""), True),
    (SourceFile("layers.psd", b""), True),
    (SourceFile("notes.txt", b""), False),
    (SourceFile("noext", b""), False),
    (SourceFile("upload", b"", mime_type="image/heic"), True),
    (SourceFile("photo.png", b"", mime_type="application/pdf"), False),
    (SourceFile("IMG_0001.HEIC", b""), True),
    (SourceFile("IMG_0002.heic", b"", mime_type="application/octet-stream"), True),
])
def test_is_image_source(source, expected):
    assert is_image_source(source) is expected


def test_source_file_from_path(tmp_path):
    path = tmp_path / "holiday.png"
    path.write_bytes(image_bytes(10, 10))
    source = SourceFile.from_path(path)
    assert source.name == "holiday.png"
    assert source.stem == "holiday"
    assert decode(source.data).natural_width == 10


def test_release_tolerates_none():
    release(None)


def test_unique_path(tmp_path):
    target = tmp_path / "out.png"
    assert unique_path(target) == target
    target.write_bytes(b"x")
    assert unique_path(target) == tmp_path / "out-01.png"
    (tmp_path / "out-01.png").write_bytes(b"x")
    assert unique_path(target) == tmp_path / "out-02.png"


def test_heif_decoder_is_registered():
    extensions = Image.registered_extensions()
    assert extensions.get(".heic") == "HEIF"
    assert extensions.get(".heif") == "HEIF"
