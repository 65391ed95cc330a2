"""Conversion of glTF materials into the AEM material section."""

from __future__ import annotations

import math
import struct
from typing import BinaryIO

import numpy as np

from .gltf import Document, TextureTransform, TextureView

_INDEX = struct.Struct("<i")


def make_uv_transform(transform: TextureTransform | None) -> np.ndarray:
    """Return the 3x3 UV matrix: translate, then rotate, then scale."""
    if transform is None:
        return np.identity(3)
    translate = np.identity(3)
    translate[:2, 2] = transform.offset
    cos, sin = math.cos(transform.rotation), math.sin(transform.rotation)
    rotate = np.array([[cos, -sin, 0.0], [sin, cos, 0.0], [0.0, 0.0, 1.0]])
    scale = np.diag([transform.scale[0], transform.scale[1], 1.0])
    return translate @ rotate @ scale


def _resolve(document: Document, view: TextureView | None) -> tuple[int, TextureTransform | None]:
    if view is None or view.texture is None:
        return -1, None
    return document.texture_index(view.texture), view.transform


def _write_slot(stream: BinaryIO, index: int, transform: TextureTransform | None) -> None:
    stream.write(_INDEX.pack(index))
    matrix = make_uv_transform(transform).astype("<f4")
    stream.write(matrix.tobytes(order="F"))


def write_materials(document: Document, stream: BinaryIO) -> None:
    """Write base color, normal and metallic/roughness slots for each material."""
    for material_index, material in enumerate(document.materials):
        base_color_index, base_color_transform = -1, None
        if material.has_pbr_metallic_roughness:
            base_color_index, base_color_transform = _resolve(document, material.base_color_texture)
        elif material.has_pbr_specular_glossiness:
            base_color_index, base_color_transform = _resolve(document, material.diffuse_texture)

        normal_index, normal_transform = _resolve(document, material.normal_texture)
        metallic_roughness_index, metallic_roughness_transform = -1, None

        _write_slot(stream, base_color_index, base_color_transform)
        _write_slot(stream, normal_index, normal_transform)
        _write_slot(stream, metallic_roughness_index, metallic_roughness_transform)

        print(f'Material #{material_index} "{material.name}":')
        print(f"\tBase color texture index: {base_color_index}")
        print(f"\tNormal texture index: {normal_index}")
        print(f"\tRoughness/Metalness texture index: {metallic_roughness_index}")