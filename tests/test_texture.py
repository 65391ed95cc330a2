import io
import struct

import pytest
from PIL import Image as PILImage

from aemtools.gltf import Document, Image, Sampler, Texture
from aemtools.texture import (
    LevelInfo,
    TextureInfo,
    TextureOutput,
    TextureWrapMode,
    build_texture_output,
    wrap_mode_from_gl,
)


def _png(mode, size, color):
    image = PILImage.new(mode, size, color)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue(), image.tobytes()


def _document(png, sampler=None):
    texture = Texture(name="t", image=Image(embedded=png), sampler=sampler)
    return Document(textures=[texture])


@pytest.mark.parametrize(
    "value, expected",
    [
        (0x2901, TextureWrapMode.REPEAT),
        (0x8370, TextureWrapMode.MIRRORED_REPEAT),
        (0x812F, TextureWrapMode.CLAMP_TO_EDGE),
        (0x812D, TextureWrapMode.CLAMP_TO_BORDER),
    ],
)
def test_wrap_mode_from_gl(value, expected):
    assert wrap_mode_from_gl(value) is expected


def test_wrap_mode_unknown_raises():
    with pytest.raises(ValueError):
        wrap_mode_from_gl(0x1234)


@pytest.mark.parametrize(
    "value, label",
    [
        (0x2901, "Repeat"),
        (0x8370, "Mirrored repeat"),
        (0x812F, "Clamp to edge"),
        (0x812D, "Clamp to border"),
    ],
)
def test_wrap_mode_labels(value, label):
    assert wrap_mode_from_gl(value).label == label


def test_levels_halve_down_to_one_pixel():
    png, _ = _png("RGB", (8, 2), (10, 20, 30))
    output = build_texture_output(_document(png))
    (info,) = output.textures
    assert info.channel_count == 3
    assert (info.width, info.height) == (8, 2)
    assert (info.levels[-1].width, info.levels[-1].height) == (1, 1)
    for previous, current in zip(info.levels, info.levels[1:]):
        assert current.width == max(previous.width // 2, 1)
        assert current.height == max(previous.height // 2, 1)
    for level in info.levels:
        assert level.data_size == level.width * level.height * info.channel_count


def test_channel_count_follows_image_mode():
    png, _ = _png("RGBA", (2, 2), (1, 2, 3, 4))
    assert build_texture_output(_document(png)).textures[0].channel_count == 4
    png, _ = _png("L", (2, 2), 7)
    assert build_texture_output(_document(png)).textures[0].channel_count == 1


def test_default_sampler_repeats():
    png, _ = _png("RGB", (2, 2), (0, 0, 0))
    info = build_texture_output(_document(png)).textures[0]
    assert info.wrap_mode == (TextureWrapMode.REPEAT, TextureWrapMode.REPEAT)


def test_sampler_wrap_modes_are_used():
    png, _ = _png("RGB", (2, 2), (0, 0, 0))
    info = build_texture_output(_document(png, Sampler(wrap_s=0x812F, wrap_t=0x8370))).textures[0]
    assert info.wrap_mode == (TextureWrapMode.CLAMP_TO_EDGE, TextureWrapMode.MIRRORED_REPEAT)


def test_image_buffer_round_trip():
    png, pixels = _png("RGB", (4, 4), (200, 100, 50))
    output = build_texture_output(_document(png))
    stream = io.BytesIO()
    output.write_image_buffer(stream)
    data = stream.getvalue()
    assert len(data) == output.image_buffer_size()
    assert data[: len(pixels)] == pixels
    # A uniform image stays uniform at every level.
    assert set(data[len(pixels):]) <= {200, 100, 50}


def test_level_count_sums_textures():
    png_a, _ = _png("RGB", (4, 4), (0, 0, 0))
    png_b, _ = _png("RGB", (2, 2), (0, 0, 0))
    document = Document(textures=[Texture(image=Image(embedded=png_a)), Texture(image=Image(embedded=png_b))])
    output = build_texture_output(document)
    assert output.level_count() == sum(t.level_count for t in output.textures)


def test_write_levels_offsets_accumulate():
    levels_a = [LevelInfo(2, 2, 12), LevelInfo(1, 1, 3)]
    levels_b = [LevelInfo(1, 1, 4)]
    wrap = (TextureWrapMode.REPEAT, TextureWrapMode.REPEAT)
    output = TextureOutput([TextureInfo(b"", 3, levels_a, wrap), TextureInfo(b"", 4, levels_b, wrap)])
    stream = io.BytesIO()
    output.write_levels(stream)
    records = list(struct.iter_unpack("<QQ", stream.getvalue()))
    assert records == [(0, 12), (12, 3), (15, 4)]


def test_write_textures_record():
    levels = [LevelInfo(2, 2, 12), LevelInfo(1, 1, 3)]
    wrap = (TextureWrapMode.CLAMP_TO_EDGE, TextureWrapMode.REPEAT)
    output = TextureOutput([TextureInfo(b"", 3, levels, wrap), TextureInfo(b"", 3, levels, wrap)])
    stream = io.BytesIO()
    output.write_textures(stream)
    records = list(struct.iter_unpack("<IIIIIii", stream.getvalue()))
    assert records[0] == (2, 2, 3, 0, 2, int(wrap[0]), int(wrap[1]))
    assert records[1][3] == 2


def test_uri_image_is_rejected():
    document = Document(textures=[Texture(image=Image(uri="texture.png"))])
    with pytest.raises(ValueError):
        build_texture_output(document)


def test_texture_without_image_is_rejected():
    with pytest.raises(ValueError):
        build_texture_output(Document(textures=[Texture(name="empty")]))


def test_undecodable_image_is_rejected():
    with pytest.raises(ValueError):
        build_texture_output(_document(b"not an image"))