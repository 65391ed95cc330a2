"""Node transforms and tangent reconstruction for glTF geometry."""

from __future__ import annotations

import numpy as np

from .gltf import Accessor, Document, Mesh, Node

_FLT_EPSILON = 1.1920929e-07


def _search(node: Node, mesh: Mesh) -> Node | None:
    if node.mesh is mesh:
        return node
    for child in node.children:
        found = _search(child, mesh)
        if found is not None:
            return found
    return None


def find_node_for_mesh(document: Document, mesh: Mesh) -> Node | None:
    """Return the first node that references ``mesh``, or None."""
    for node in document.nodes:
        found = _search(node, mesh)
        if found is not None:
            return found
    return None


def _quat_matrix(rotation) -> np.ndarray:
    x, y, z, w = rotation
    norm = float(np.sqrt(x * x + y * y + z * z + w * w))
    s = 2.0 / norm if norm > 0.0 else 0.0
    xx, yy, zz = s * x * x, s * y * y, s * z * z
    xy, yz, xz = s * x * y, s * y * z, s * x * z
    wx, wy, wz = s * w * x, s * w * y, s * w * z
    result = np.identity(4)
    result[:3, :3] = [
        [1.0 - yy - zz, xy - wz, xz + wy],
        [xy + wz, 1.0 - xx - zz, yz - wx],
        [xz - wy, yz + wx, 1.0 - xx - yy],
    ]
    return result


def _local_transform(node: Node) -> np.ndarray:
    local = np.identity(4)
    if node.matrix is not None:
        if node.translation is not None or node.rotation is not None or node.scale is not None:
            raise ValueError(f"node {node.name!r} has both a matrix and TRS properties")
        local = np.array(node.matrix, dtype=float).reshape(4, 4).T
    if node.translation is not None:
        translate = np.identity(4)
        translate[:3, 3] = node.translation
        local = local @ translate
    if node.rotation is not None:
        local = local @ _quat_matrix(node.rotation)
    if node.scale is not None:
        local = local @ np.diag([*node.scale, 1.0])
    return local


def node_transform(node: Node) -> np.ndarray:
    """Return the 4x4 transform of ``node`` combined with all its ancestors."""
    transform = np.identity(4)
    current: Node | None = node
    while current is not None:
        transform = _local_transform(current) @ transform
        current = current.parent
    return transform


def _read_all(accessor: Accessor, width: int) -> np.ndarray:
    rows = [accessor.read_float(i)[:width] for i in range(accessor.count)]
    return np.array(rows, dtype=float).reshape(-1, width)


def reconstruct_tangents(
    positions: Accessor, normals: Accessor, uvs: Accessor, indices: Accessor
) -> np.ndarray:
    """Compute per-vertex tangents (xyz plus handedness in w) from triangle UVs."""
    vertex_count = positions.count
    pos = _read_all(positions, 3)
    nrm = _read_all(normals, 3)[:vertex_count]
    uv = _read_all(uvs, 2)

    index_count = indices.count - indices.count % 3
    triangles = np.array(
        [indices.read_index(i) for i in range(index_count)], dtype=np.int64
    ).reshape(-1, 3)
    if triangles.size and triangles.max() >= vertex_count:
        raise IndexError("triangle index exceeds vertex count")

    tan1 = np.zeros((vertex_count, 3))
    tan2 = np.zeros((vertex_count, 3))
    if triangles.size:
        i0, i1, i2 = triangles.T
        e1 = pos[i1] - pos[i0]
        e2 = pos[i2] - pos[i0]
        d1 = uv[i1] - uv[i0]
        d2 = uv[i2] - uv[i0]
        s1, t1 = d1[:, 0:1], d1[:, 1:2]
        s2, t2 = d2[:, 0:1], d2[:, 1:2]
        with np.errstate(divide="ignore", invalid="ignore"):
            r = 1.0 / (s1 * t2 - s2 * t1)
            sdir = (t2 * e1 - t1 * e2) * r
            tdir = (s1 * e2 - s2 * e1) * r
        for corner in (i0, i1, i2):
            np.add.at(tan1, corner, sdir)
            np.add.at(tan2, corner, tdir)

    with np.errstate(invalid="ignore", divide="ignore"):
        dot = np.sum(nrm * tan1, axis=1, keepdims=True)
        ortho = tan1 - nrm * dot
        length = np.linalg.norm(ortho, axis=1)
        normalized = ortho / length[:, None]
        normalized[length < _FLT_EPSILON] = 0.0
        handedness = np.sum(np.cross(nrm, tan1) * tan2, axis=1)

    out = np.empty((vertex_count, 4))
    out[:, :3] = normalized
    out[:, 3] = np.where(handedness < 0.0, -1.0, 1.0)
    return out