"""Conversion of glTF triangle primitives into the AEM vertex, index and mesh sections."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import BinaryIO, NamedTuple

import numpy as np

from .gltf import TRIANGLES, Accessor, Document, Primitive
from .transform import find_node_for_mesh, node_transform, reconstruct_tangents

VERTEX_DTYPE = np.dtype(
    [
        ("position", "<f4", 3),
        ("normal", "<f4", 3),
        ("tangent", "<f4", 3),
        ("bitangent", "<f4", 3),
        ("uv", "<f4", 2),
        ("bone_indices", "<i4", 4),
        ("bone_weights", "<f4", 4),
        ("extra_bone_index", "<i4"),
    ]
)
VERTEX_SIZE = VERTEX_DTYPE.itemsize
INDEX_SIZE = 4

_MESH_RECORD = struct.Struct("<IIi")


class _Attributes(NamedTuple):
    positions: Accessor | None
    normals: Accessor | None
    tangents: Accessor | None
    uvs: Accessor | None


def _locate_attributes(primitive: Primitive) -> _Attributes:
    found: dict[str, Accessor | None] = dict.fromkeys(_Attributes._fields)
    for name, accessor in primitive.attributes.items():
        if name == "POSITION":
            found["positions"] = accessor
        elif name == "NORMAL":
            found["normals"] = accessor
        elif name == "TANGENT":
            found["tangents"] = accessor
        elif name.startswith("TEXCOORD"):
            found["uvs"] = accessor
    return _Attributes(**found)


def _read(accessor: Accessor, width: int) -> np.ndarray:
    rows = []
    for index in range(accessor.count):
        values = accessor.read_float(index)
        if len(values) < width:
            raise ValueError(f"accessor holds {len(values)} components, {width} required")
        rows.append(values[:width])
    return np.array(rows, dtype=float).reshape(-1, width)


def _apply(transform: np.ndarray, vectors: np.ndarray) -> np.ndarray:
    return vectors @ transform[:3, :3].T + transform[:3, 3]


@dataclass(eq=False)
class OutputMesh:
    """Geometry of one triangle primitive, already in model space."""

    name: str
    positions: np.ndarray
    normals: np.ndarray
    tangents: np.ndarray
    bitangents: np.ndarray
    uvs: np.ndarray
    indices: np.ndarray
    first_index: int
    material_index: int

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def index_count(self) -> int:
        return len(self.indices)


@dataclass
class GeometryOutput:
    """All output meshes of a document, in file order."""

    meshes: list[OutputMesh]

    def vertex_buffer_size(self) -> int:
        """Size of the vertex section in bytes."""
        return sum(mesh.vertex_count for mesh in self.meshes) * VERTEX_SIZE

    def index_buffer_size(self) -> int:
        """Size of the index section in bytes."""
        return sum(mesh.index_count for mesh in self.meshes) * INDEX_SIZE

    def write_vertex_buffer(self, stream: BinaryIO) -> None:
        """Write every vertex with empty bone bindings."""
        for mesh in self.meshes:
            records = np.zeros(mesh.vertex_count, dtype=VERTEX_DTYPE)
            records["position"] = mesh.positions
            records["normal"] = mesh.normals
            records["tangent"] = mesh.tangents
            records["bitangent"] = mesh.bitangents
            records["uv"] = mesh.uvs
            records["bone_indices"] = -1
            records["bone_weights"] = 0.0
            records["extra_bone_index"] = -1
            stream.write(records.tobytes())

    def write_index_buffer(self, stream: BinaryIO) -> None:
        """Write the indices of all meshes as unsigned 32-bit integers."""
        for mesh in self.meshes:
            stream.write(mesh.indices.astype("<u4").tobytes())

    def write_meshes(self, stream: BinaryIO) -> None:
        """Write one record per mesh: first index, index count and material index."""
        for mesh_index, mesh in enumerate(self.meshes):
            stream.write(_MESH_RECORD.pack(mesh.first_index, mesh.index_count, mesh.material_index))
            print(f'Mesh #{mesh_index} "{mesh.name}":')
            print(f"\tFirst index: {mesh.first_index}")
            print(f"\tIndex count: {mesh.index_count}")
            print(f"\tMaterial index: {mesh.material_index}")


def _convert(
    document: Document,
    mesh,
    primitive: Primitive,
    attributes: _Attributes,
    first_vertex: int,
    first_index: int,
) -> OutputMesh:
    positions, normals, tangents, uvs = attributes
    vertex_count = positions.count
    if normals.count != vertex_count:
        raise ValueError(f"mesh {mesh.name!r}: normal count differs from position count")
    if tangents is not None and tangents.count != vertex_count:
        raise ValueError(f"mesh {mesh.name!r}: tangent count differs from position count")
    if uvs is not None and uvs.count != vertex_count:
        raise ValueError(f"mesh {mesh.name!r}: uv count differs from position count")

    node = find_node_for_mesh(document, mesh)
    if node is None:
        raise ValueError(f"mesh {mesh.name!r} is not referenced by any node")
    transform = node_transform(node)

    if tangents is not None:
        raw_tangents = _read(tangents, 4)
    elif uvs is not None:
        raw_tangents = reconstruct_tangents(positions, normals, uvs, primitive.indices)
    else:
        raw_tangents = np.zeros((vertex_count, 4))

    out_positions = _apply(transform, _read(positions, 3))
    out_normals = _apply(transform, _read(normals, 3))
    out_tangents = _apply(transform, raw_tangents[:, :3])
    out_bitangents = np.cross(out_normals, out_tangents) * raw_tangents[:, 3:4]
    out_uvs = _read(uvs, 2) if uvs is not None else np.zeros((vertex_count, 2))

    indices = primitive.indices
    out_indices = np.array(
        [indices.read_index(i) + first_vertex for i in range(indices.count)], dtype=np.int64
    )
    if out_indices.size and out_indices.max() > 0xFFFFFFFF:
        raise ValueError("index does not fit into 32 bits")

    material_index = (
        document.material_index(primitive.material) if primitive.material is not None else -1
    )

    return OutputMesh(
        name=mesh.name,
        positions=out_positions,
        normals=out_normals,
        tangents=out_tangents,
        bitangents=out_bitangents,
        uvs=out_uvs,
        indices=out_indices,
        first_index=first_index,
        material_index=material_index,
    )


def build_geometry(document: Document) -> GeometryOutput:
    """Collect every indexed triangle primitive with positions and normals."""
    candidates = []
    for mesh in document.meshes:
        for primitive in mesh.primitives:
            if primitive.mode != TRIANGLES:
                continue
            attributes = _locate_attributes(primitive)
            if attributes.positions is None or attributes.normals is None:
                continue
            if primitive.indices is None:
                raise ValueError(f"mesh {mesh.name!r} has a primitive without indices")
            candidates.append((mesh, primitive, attributes))

    if not candidates:
        raise ValueError("document holds no triangle primitives with positions and normals")

    meshes: list[OutputMesh] = []
    first_vertex = first_index = 0
    for mesh, primitive, attributes in candidates:
        output = _convert(document, mesh, primitive, attributes, first_vertex, first_index)
        meshes.append(output)
        first_vertex += output.vertex_count
        first_index += output.index_count
    return GeometryOutput(meshes)