"""The AEM file header."""

from __future__ import annotations

import struct
from typing import BinaryIO

from .geometry import GeometryOutput
from .gltf import Document
from .texture import TextureOutput

MAGIC = b"AEM\x01"

HEADER = struct.Struct("<4s3Q8I")


def write_header(
    document: Document, geometry: GeometryOutput, textures: TextureOutput, stream: BinaryIO
) -> None:
    """Write the magic number, section sizes and object counts."""
    if not document.meshes:
        raise ValueError("document holds no meshes")

    vertex_buffer_size = geometry.vertex_buffer_size()
    index_buffer_size = geometry.index_buffer_size()
    image_buffer_size = textures.image_buffer_size()
    level_count = textures.level_count()
    texture_count = len(document.textures)
    mesh_count = len(document.meshes)
    material_count = len(document.materials)

    stream.write(
        HEADER.pack(
            MAGIC,
            vertex_buffer_size,
            index_buffer_size,
            image_buffer_size,
            level_count,
            texture_count,
            mesh_count,
            material_count,
            0,
            0,
            0,
            0,
        )
    )

    print("Header:")
    print(f"\tVertex buffer size: {vertex_buffer_size} bytes")
    print(f"\tIndex buffer size: {index_buffer_size} bytes")
    print(f"\tImage buffer size: {image_buffer_size} bytes")
    print(f"\tLevel count: {level_count}")
    print(f"\tTexture count: {texture_count}")
    print(f"\tMesh count: {mesh_count}")
    print(f"\tMaterial count: {material_count}")