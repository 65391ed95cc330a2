"""Mip level generation and the AEM image, level and texture sections."""

from __future__ import annotations

import io
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import BinaryIO

from PIL import Image as PILImage

from .gltf import Document, Sampler, Texture

_LEVEL_RECORD = struct.Struct("<QQ")
_TEXTURE_RECORD = struct.Struct("<IIIIIii")

_CHANNELS_BY_MODE = {
    "1": 1,
    "L": 1,
    "I": 1,
    "I;16": 1,
    "F": 1,
    "LA": 2,
    "La": 2,
    "RGB": 3,
    "YCbCr": 3,
    "CMYK": 3,
    "LAB": 3,
    "HSV": 3,
    "RGBA": 4,
    "RGBa": 4,
    "PA": 4,
}

_MODE_BY_CHANNELS = {1: "L", 2: "LA", 3: "RGB", 4: "RGBA"}


class TextureWrapMode(IntEnum):
    """How texture coordinates outside [0, 1] are resolved."""

    REPEAT = 0
    MIRRORED_REPEAT = 1
    CLAMP_TO_EDGE = 2
    CLAMP_TO_BORDER = 3

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    TextureWrapMode.REPEAT: "Repeat",
    TextureWrapMode.MIRRORED_REPEAT: "Mirrored repeat",
    TextureWrapMode.CLAMP_TO_EDGE: "Clamp to edge",
    TextureWrapMode.CLAMP_TO_BORDER: "Clamp to border",
}

_GL_WRAP_MODES = {
    0x2901: TextureWrapMode.REPEAT,
    0x8370: TextureWrapMode.MIRRORED_REPEAT,
    0x812F: TextureWrapMode.CLAMP_TO_EDGE,
    0x812D: TextureWrapMode.CLAMP_TO_BORDER,
}


def wrap_mode_from_gl(value: int) -> TextureWrapMode:
    """Map an OpenGL wrap constant as used by glTF samplers to a wrap mode."""
    try:
        return _GL_WRAP_MODES[value]
    except KeyError:
        raise ValueError(f"unknown texture wrap mode {value:#x}") from None


@dataclass(frozen=True)
class LevelInfo:
    """Resolution and byte size of one mip level."""

    width: int
    height: int
    data_size: int


@dataclass(eq=False)
class TextureInfo:
    """An embedded image together with its mip chain description."""

    data: bytes
    channel_count: int
    levels: list[LevelInfo]
    wrap_mode: tuple[TextureWrapMode, TextureWrapMode]

    @property
    def level_count(self) -> int:
        return len(self.levels)

    @property
    def width(self) -> int:
        return self.levels[0].width

    @property
    def height(self) -> int:
        return self.levels[0].height


def _channel_count(image: PILImage.Image) -> int:
    if image.mode == "P":
        return 4 if "transparency" in image.info else 3
    try:
        return _CHANNELS_BY_MODE[image.mode]
    except KeyError:
        raise ValueError(f"unsupported image mode {image.mode!r}") from None


def _decode(data: bytes, channel_count: int) -> PILImage.Image:
    try:
        with PILImage.open(io.BytesIO(data)) as image:
            image.load()
            return image.convert(_MODE_BY_CHANNELS[channel_count])
    except (OSError, ValueError) as exc:
        raise ValueError(f"cannot decode texture image: {exc}") from exc


def _texture_info(texture: Texture) -> TextureInfo:
    image = texture.image
    if image is None:
        raise ValueError(f"texture {texture.name!r} has no image")
    if image.uri is not None or image.embedded is None:
        raise ValueError(f"image of texture {texture.name!r} must be embedded in a buffer view")

    try:
        with PILImage.open(io.BytesIO(image.embedded)) as decoded:
            width, height = decoded.size
            channel_count = _channel_count(decoded)
    except OSError as exc:
        raise ValueError(f"cannot read image of texture {texture.name!r}: {exc}") from exc

    levels = []
    for level in range(max(width, height).bit_length()):
        level_width = max(width >> level, 1)
        level_height = max(height >> level, 1)
        levels.append(LevelInfo(level_width, level_height, level_width * level_height * channel_count))

    sampler = texture.sampler or Sampler()
    wrap_mode = (wrap_mode_from_gl(sampler.wrap_s), wrap_mode_from_gl(sampler.wrap_t))
    return TextureInfo(image.embedded, channel_count, levels, wrap_mode)


@dataclass
class TextureOutput:
    """Mip chains of all textures of a document, in file order."""

    textures: list[TextureInfo]

    def image_buffer_size(self) -> int:
        """Size of the image section in bytes."""
        return sum(level.data_size for texture in self.textures for level in texture.levels)

    def level_count(self) -> int:
        """Total number of mip levels over all textures."""
        return sum(texture.level_count for texture in self.textures)

    def write_image_buffer(self, stream: BinaryIO) -> None:
        """Write the raw pixels of every level of every texture."""
        for texture in self.textures:
            base = _decode(texture.data, texture.channel_count)
            for level_index, level in enumerate(texture.levels):
                if level_index == 0:
                    pixels = base
                else:
                    pixels = base.resize(
                        (level.width, level.height), PILImage.Resampling.BILINEAR
                    )
                raw = pixels.tobytes()
                if len(raw) != level.data_size:
                    raise ValueError("decoded level does not match its expected size")
                stream.write(raw)

    def write_levels(self, stream: BinaryIO) -> None:
        """Write offset and size of each level within the image section."""
        offset = 0
        for texture in self.textures:
            for level in texture.levels:
                stream.write(_LEVEL_RECORD.pack(offset, level.data_size))
                offset += level.data_size

    def write_textures(self, stream: BinaryIO) -> None:
        """Write resolution, channels, level range and wrap modes of each texture."""
        level_offset = 0
        for texture_index, texture in enumerate(self.textures):
            wrap_x, wrap_y = texture.wrap_mode
            stream.write(
                _TEXTURE_RECORD.pack(
                    texture.width,
                    texture.height,
                    texture.channel_count,
                    level_offset,
                    texture.level_count,
                    int(wrap_x),
                    int(wrap_y),
                )
            )
            print(f"Texture #{texture_index}:")
            print(f"\tResolution: {texture.width} x {texture.height} x {texture.channel_count}")
            print(f"\tFirst level: {level_offset}")
            print(f"\tLevel count: {texture.level_count}")
            print(f"\tWrap mode X: {wrap_x.label}")
            print(f"\tWrap mode Y: {wrap_y.label}")
            level_offset += texture.level_count


def build_texture_output(document: Document) -> TextureOutput:
    """Describe the mip chain of every texture in ``document``."""
    return TextureOutput([_texture_info(texture) for texture in document.textures])