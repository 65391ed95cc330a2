"""Bone lists for skeletal, mesh and hierarchy animation of a scene."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from .scene import (
    Bone,
    Node,
    NodeAnim,
    QuatKey,
    Scene,
    SceneMesh,
    VectorKey,
    channel_from_node,
    decompose,
)

MAX_BONES_PER_NODE = 16

_BRANCH = "|   "
_LEAF = "|---"


class BoneType(Enum):
    """What a generated bone stands for."""

    SKELETAL = "skeletal"
    MESH = "mesh"
    HIERARCHY = "hierarchy"


@dataclass(eq=False)
class BoneInfo:
    """A bone of the output skeleton."""

    bone: Bone
    inv_bind_matrix: np.ndarray = field(default_factory=lambda: np.identity(4))
    mesh: SceneMesh | None = None
    parent_index: int = -1
    type: BoneType = BoneType.SKELETAL


def get_node_count(root_node: Node) -> int:
    """Return the number of nodes in the tree below and including ``root_node``."""
    return 1 + sum(get_node_count(child) for child in root_node.children)


def _bones_of(scene: Scene, node: Node):
    return (bone for mesh in scene.meshes for bone in mesh.bones if bone.node is node)


def bones_from_node(scene: Scene, node: Node) -> list[Bone]:
    """Return every bone of every mesh that is attached to ``node``."""
    bones: list[Bone] = []
    for bone in _bones_of(scene, node):
        bones.append(bone)
        if len(bones) >= MAX_BONES_PER_NODE:
            raise ValueError(
                f"node {node.name!r} is referenced by {MAX_BONES_PER_NODE} or more bones"
            )
    return bones


def get_bone_info_count(scene: Scene, node: Node) -> int:
    """Return the number of bone slots needed for ``node`` and its descendents."""
    bone_count = len(bones_from_node(scene, node)) or 1
    count = bone_count + len(node.meshes)
    return count + sum(get_bone_info_count(scene, child) for child in node.children)


def has_node_bones(scene: Scene, node: Node) -> bool:
    """Tell whether any bone of any mesh is attached to ``node``."""
    return next(_bones_of(scene, node), None) is not None


def mesh_from_bone(scene: Scene, bone: Bone) -> SceneMesh:
    """Return the mesh that owns ``bone``."""
    for mesh in scene.meshes:
        if any(candidate is bone for candidate in mesh.bones):
            return mesh
    raise ValueError(f"bone {bone.name!r} belongs to no mesh of the scene")


def _quat_mul(p, q) -> tuple[float, float, float, float]:
    px, py, pz, pw = p
    qx, qy, qz, qw = q
    return (
        pw * qx + px * qw + py * qz - pz * qy,
        pw * qy - px * qz + py * qw + pz * qx,
        pw * qz + px * qy - py * qx + pz * qw,
        pw * qw - px * qx - py * qy - pz * qz,
    )


def transform_channel(channel: NodeAnim, transform) -> None:
    """Apply the translation, rotation and scale of ``transform`` to every key of ``channel``."""
    translation, rotation, scale = decompose(transform)

    channel.position_keys[:] = [
        VectorKey(key.time, tuple(float(v + t) for v, t in zip(key.value, translation)))
        for key in channel.position_keys
    ]
    channel.rotation_keys[:] = [
        QuatKey(key.time, tuple(float(v) for v in _quat_mul(key.value, rotation)))
        for key in channel.rotation_keys
    ]
    channel.scaling_keys[:] = [
        VectorKey(key.time, tuple(float(v * s) for v, s in zip(key.value, scale)))
        for key in channel.scaling_keys
    ]


def node_has_bone_ancestors(scene: Scene, node: Node) -> bool:
    """Tell whether any ancestor of ``node`` (not the node itself) has bones."""
    ancestor = node.parent
    while ancestor is not None:
        if has_node_bones(scene, ancestor):
            return True
        ancestor = ancestor.parent
    return False


def node_has_bone_descendents(scene: Scene, node: Node) -> bool:
    """Tell whether any descendent of ``node`` (not the node itself) has bones."""
    return any(
        has_node_bones(scene, child) or node_has_bone_descendents(scene, child)
        for child in node.children
    )


def node_has_mesh_descendents(scene: Scene, node: Node) -> bool:
    """Tell whether any descendent of ``node`` (not the node itself) references a mesh."""
    return any(
        bool(child.meshes) or node_has_mesh_descendents(scene, child) for child in node.children
    )


def process_node(scene: Scene, node: Node, parent_index: int, bone_infos: list[BoneInfo]) -> int:
    """Append the bones generated for ``node`` and return the index its children attach to."""
    if node is None:
        raise ValueError("node must not be None")
    result = -1

    bones = bones_from_node(scene, node)
    for bone in bones:
        bone_infos.append(
            BoneInfo(
                bone=bone,
                inv_bind_matrix=np.array(bone.offset_matrix, dtype=float).reshape(4, 4),
                mesh=mesh_from_bone(scene, bone),
                parent_index=parent_index,
                type=BoneType.SKELETAL,
            )
        )
        result = len(bone_infos) - 1

    for mesh_index in node.meshes:
        bone_infos.append(
            BoneInfo(
                bone=Bone(name=node.name, node=node),
                mesh=scene.meshes[mesh_index],
                parent_index=parent_index,
                type=BoneType.MESH,
            )
        )

    if not bones and not node.meshes:
        bone_infos.append(
            BoneInfo(
                bone=Bone(name=node.name, node=node),
                mesh=None,
                parent_index=parent_index,
                type=BoneType.HIERARCHY,
            )
        )
        result = len(bone_infos) - 1

    return result


def init_animation(scene: Scene) -> list[BoneInfo]:
    """Generate the bones of the whole scene, visiting nodes breadth first."""
    bone_infos: list[BoneInfo] = []
    queue: deque[tuple[Node, int]] = deque([(scene.root_node, -1)])
    while queue:
        node, parent_index = queue.popleft()
        index = process_node(scene, node, parent_index, bone_infos)
        queue.extend((child, index) for child in node.children)
    return bone_infos


def _indent(level: int, last: str | None) -> str:
    if level <= 0:
        return ""
    return _BRANCH * (level - 1) + (last if last is not None else _BRANCH)


def _checkbox(label: str, checked: bool) -> str:
    return f"{label} [{'x' if checked else ' '}]"


def format_node_hierarchy(scene: Scene, node: Node, level: int = 1) -> str:
    """Describe ``node`` and its descendents as an indented tree."""
    lines: list[str] = []
    _format(scene, node, level, lines)
    return "\n".join(lines) + "\n"


def _format(scene: Scene, node: Node, level: int, lines: list[str]) -> None:
    lines.append(f'{_indent(level, _LEAF)}Node "{node.name}":')

    has_transform = not np.array_equal(node.transformation, np.identity(4))
    has_bones = has_node_bones(scene, node)
    animated = any(channel_from_node(animation, node) for animation in scene.animations)
    flags = "\t".join(
        (
            _checkbox("Transform", has_transform),
            _checkbox("Mesh", bool(node.meshes)),
            _checkbox("Bones", has_bones),
            _checkbox("Animated", animated),
        )
    )
    lines.append(_indent(level, None) + flags)

    if node.meshes:
        names = ", ".join(f'"{scene.meshes[index].name}"' for index in node.meshes)
        lines.append(f"{_indent(level, None)}Meshes: {names}")

    if has_bones:
        for bone_index, bone in enumerate(bones_from_node(scene, node)):
            armature = bone.armature.name if bone.armature is not None else ""
            lines.append(
                f"{_indent(level, None)}Bone #{bone_index} affects mesh "
                f'"{mesh_from_bone(scene, bone).name}" with armature: "{armature}" '
                f"and {len(bone.weights)} weights"
            )

    for child in node.children:
        _format(scene, child, level + 1, lines)