"""A node hierarchy with bones and animations, and the lookups used to export it."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np


@dataclass
class VertexWeight:
    vertex_id: int
    weight: float


@dataclass(eq=False)
class Node:
    """A scene node; ``transformation`` maps child space to parent space (translation in the last column)."""

    name: str = ""
    transformation: np.ndarray = field(default_factory=lambda: np.identity(4))
    children: list[Node] = field(default_factory=list)
    meshes: list[int] = field(default_factory=list)
    parent: Node | None = None

    def __post_init__(self) -> None:
        self.transformation = np.asarray(self.transformation, dtype=float).reshape(4, 4)
        for child in self.children:
            child.parent = self


@dataclass(eq=False)
class Bone:
    name: str
    node: Node | None = None
    offset_matrix: np.ndarray = field(default_factory=lambda: np.identity(4))
    weights: list[VertexWeight] = field(default_factory=list)
    armature: Node | None = None


@dataclass(eq=False)
class SceneMesh:
    name: str = ""
    bones: list[Bone] = field(default_factory=list)
    material_index: int = 0


@dataclass
class VectorKey:
    time: float
    value: tuple[float, float, float]


@dataclass
class QuatKey:
    time: float
    value: tuple[float, float, float, float]  # x, y, z, w


@dataclass(eq=False)
class NodeAnim:
    """Keyframes that animate the node named ``node_name``."""

    node_name: str
    position_keys: list[VectorKey] = field(default_factory=list)
    rotation_keys: list[QuatKey] = field(default_factory=list)
    scaling_keys: list[VectorKey] = field(default_factory=list)


@dataclass(eq=False)
class Animation:
    name: str = ""
    duration: float = 0.0
    ticks_per_second: float = 0.0
    channels: list[NodeAnim] = field(default_factory=list)


@dataclass(eq=False)
class Scene:
    root_node: Node
    meshes: list[SceneMesh] = field(default_factory=list)
    animations: list[Animation] = field(default_factory=list)


def first_bone_from_node(mesh: SceneMesh, node: Node) -> Bone | None:
    """Return the first bone of ``mesh`` that is attached to ``node``."""
    return next((bone for bone in mesh.bones if bone.node is node), None)


def get_bone_index(scene: Scene, bone: Bone) -> int:
    """Return the position of ``bone`` when the bones of all meshes are listed in order."""
    all_bones = (candidate for mesh in scene.meshes for candidate in mesh.bones)
    for index, candidate in enumerate(all_bones):
        if candidate is bone:
            return index
    raise ValueError(f"bone {bone.name!r} does not belong to the scene")


def node_from_mesh(scene: Scene, root_node: Node, mesh: SceneMesh) -> Node | None:
    """Return the first node in depth-first order that references ``mesh``."""
    if any(scene.meshes[index] is mesh for index in root_node.meshes):
        return root_node
    for child in root_node.children:
        found = node_from_mesh(scene, child, mesh)
        if found is not None:
            return found
    return None


def channel_from_node(animation: Animation, node: Node) -> NodeAnim | None:
    """Return the channel of ``animation`` that targets ``node`` by name."""
    return next((channel for channel in animation.channels if channel.node_name == node.name), None)


def _matrix_quat(rotation: np.ndarray) -> tuple[float, float, float, float]:
    m = rotation.T  # m[column][row]
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    if trace >= 0.0:
        r = math.sqrt(1.0 + trace)
        rinv = 0.5 / r
        quat = (
            rinv * (m[1, 2] - m[2, 1]),
            rinv * (m[2, 0] - m[0, 2]),
            rinv * (m[0, 1] - m[1, 0]),
            r * 0.5,
        )
    elif m[0, 0] >= m[1, 1] and m[0, 0] >= m[2, 2]:
        r = math.sqrt(1.0 - m[1, 1] - m[2, 2] + m[0, 0])
        rinv = 0.5 / r
        quat = (
            r * 0.5,
            rinv * (m[0, 1] + m[1, 0]),
            rinv * (m[0, 2] + m[2, 0]),
            rinv * (m[1, 2] - m[2, 1]),
        )
    elif m[1, 1] >= m[2, 2]:
        r = math.sqrt(1.0 - m[0, 0] - m[2, 2] + m[1, 1])
        rinv = 0.5 / r
        quat = (
            rinv * (m[0, 1] + m[1, 0]),
            r * 0.5,
            rinv * (m[1, 2] + m[2, 1]),
            rinv * (m[2, 0] - m[0, 2]),
        )
    else:
        r = math.sqrt(1.0 - m[0, 0] - m[1, 1] + m[2, 2])
        rinv = 0.5 / r
        quat = (
            rinv * (m[0, 2] + m[2, 0]),
            rinv * (m[1, 2] + m[2, 1]),
            r * 0.5,
            rinv * (m[0, 1] - m[1, 0]),
        )
    return tuple(float(v) for v in quat)


def decompose(matrix) -> tuple[tuple[float, float, float], tuple[float, float, float, float], tuple[float, float, float]]:
    """Split an affine 4x4 matrix into translation, rotation quaternion (x, y, z, w) and scale."""
    matrix = np.asarray(matrix, dtype=float).reshape(4, 4)
    translation = tuple(float(v) for v in matrix[:3, 3])
    basis = matrix[:3, :3]
    scale = np.linalg.norm(basis, axis=0)
    with np.errstate(divide="ignore", invalid="ignore"):
        rotation = basis / scale
    if np.dot(np.cross(basis[:, 0], basis[:, 1]), basis[:, 2]) < 0.0:
        rotation = -rotation
        scale = -scale
    return translation, _matrix_quat(rotation), tuple(float(v) for v in scale)


def make_channel_for_node(node: Node) -> NodeAnim:
    """Build a single-key channel holding the node's static bind transform."""
    translation, rotation, scale = decompose(node.transformation)
    return NodeAnim(
        node_name="Static",
        position_keys=[VectorKey(0.0, translation)],
        rotation_keys=[QuatKey(0.0, rotation)],
        scaling_keys=[VectorKey(0.0, scale)],
    )


def get_node_transform(node: Node | None) -> np.ndarray:
    """Return the transform of ``node`` combined with all its ancestors."""
    transform = np.identity(4)
    while node is not None:
        transform = node.transformation @ transform
        node = node.parent
    return transform