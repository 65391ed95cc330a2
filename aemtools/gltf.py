"""Loading of glTF 2.0 documents (.gltf and .glb) into plain Python objects."""

from __future__ import annotations

import base64
import json
import struct
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import unquote, unquote_to_bytes

TRIANGLES = 4

_GLB_MAGIC = b"glTF"
_CHUNK_JSON = 0x4E4F534A
_CHUNK_BIN = 0x004E4942

_COMPONENT_FORMATS = {
    5120: "b",
    5121: "B",
    5122: "h",
    5123: "H",
    5125: "I",
    5126: "f",
}

_TYPE_SIZES = {
    "SCALAR": 1,
    "VEC2": 2,
    "VEC3": 3,
    "VEC4": 4,
    "MAT2": 4,
    "MAT3": 9,
    "MAT4": 16,
}

_NORMALIZERS = {
    5120: lambda v: max(v / 127.0, -1.0),
    5121: lambda v: v / 255.0,
    5122: lambda v: max(v / 32767.0, -1.0),
    5123: lambda v: v / 65535.0,
    5125: lambda v: v / 4294967295.0,
    5126: float,
}


class GltfError(Exception):
    """Raised when a glTF document cannot be read or is invalid."""


@dataclass(eq=False)
class Accessor:
    """A typed view of elements stored in a buffer view."""

    component_type: int
    type: str
    count: int
    normalized: bool = False
    data: bytes | None = None
    byte_offset: int = 0
    byte_stride: int = 0
    sparse: dict[int, tuple] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.component_type not in _COMPONENT_FORMATS:
            raise GltfError(f"unknown component type {self.component_type}")
        if self.type not in _TYPE_SIZES:
            raise GltfError(f"unknown accessor type {self.type!r}")
        if self.count < 0:
            raise GltfError("accessor count must not be negative")

    @property
    def _format(self) -> str:
        return "<" + _COMPONENT_FORMATS[self.component_type] * _TYPE_SIZES[self.type]

    @property
    def _stride(self) -> int:
        return self.byte_stride or struct.calcsize(self._format)

    def _end(self) -> int:
        if self.count == 0:
            return self.byte_offset
        return self.byte_offset + (self.count - 1) * self._stride + struct.calcsize(self._format)

    def _raw(self, index: int) -> tuple:
        if not 0 <= index < self.count:
            raise IndexError(f"accessor element {index} out of range (count {self.count})")
        if index in self.sparse:
            return self.sparse[index]
        if self.data is None:
            return (0,) * _TYPE_SIZES[self.type]
        return struct.unpack_from(self._format, self.data, self.byte_offset + index * self._stride)

    def read_float(self, index: int) -> tuple[float, ...]:
        """Return the components of element ``index`` as floats."""
        if self.normalized:
            convert = _NORMALIZERS[self.component_type]
        else:
            convert = float
        return tuple(convert(value) for value in self._raw(index))

    def read_index(self, index: int) -> int:
        """Return the first component of element ``index`` as an integer."""
        return int(self._raw(index)[0])


@dataclass(eq=False)
class Node:
    """A node of the scene hierarchy."""

    name: str = ""
    mesh: Mesh | None = None
    children: list[Node] = field(default_factory=list)
    parent: Node | None = None
    matrix: tuple[float, ...] | None = None
    translation: tuple[float, float, float] | None = None
    rotation: tuple[float, float, float, float] | None = None
    scale: tuple[float, float, float] | None = None


@dataclass(eq=False)
class Primitive:
    """A drawable part of a mesh."""

    mode: int = TRIANGLES
    attributes: dict[str, Accessor] = field(default_factory=dict)
    indices: Accessor | None = None
    material: Material | None = None


@dataclass(eq=False)
class Mesh:
    name: str = ""
    primitives: list[Primitive] = field(default_factory=list)


@dataclass
class TextureTransform:
    """Parameters of the KHR_texture_transform extension."""

    offset: tuple[float, float] = (0.0, 0.0)
    rotation: float = 0.0
    scale: tuple[float, float] = (1.0, 1.0)
    texcoord: int | None = None


@dataclass(eq=False)
class TextureView:
    texture: Texture
    texcoord: int = 0
    transform: TextureTransform | None = None


@dataclass(eq=False)
class Material:
    name: str = ""
    has_pbr_metallic_roughness: bool = False
    base_color_texture: TextureView | None = None
    metallic_roughness_texture: TextureView | None = None
    has_pbr_specular_glossiness: bool = False
    diffuse_texture: TextureView | None = None
    normal_texture: TextureView | None = None
    occlusion_texture: TextureView | None = None


@dataclass(eq=False)
class Sampler:
    wrap_s: int = 10497
    wrap_t: int = 10497
    mag_filter: int | None = None
    min_filter: int | None = None


@dataclass(eq=False)
class Image:
    """An image, either embedded in a buffer view or referenced by URI."""

    name: str = ""
    uri: str | None = None
    mime_type: str | None = None
    embedded: bytes | None = None
    base_dir: Path | None = None

    def data(self) -> bytes:
        """Return the encoded image bytes."""
        if self.embedded is not None:
            return self.embedded
        if self.uri is None:
            raise GltfError(f"image {self.name!r} has no data")
        return _load_uri(self.uri, self.base_dir or Path("."))


@dataclass(eq=False)
class Texture:
    name: str = ""
    image: Image | None = None
    sampler: Sampler | None = None


@dataclass(eq=False)
class Document:
    """All objects of a loaded glTF file."""

    path: Path | None = None
    accessors: list[Accessor] = field(default_factory=list)
    meshes: list[Mesh] = field(default_factory=list)
    nodes: list[Node] = field(default_factory=list)
    materials: list[Material] = field(default_factory=list)
    textures: list[Texture] = field(default_factory=list)
    images: list[Image] = field(default_factory=list)
    samplers: list[Sampler] = field(default_factory=list)

    def material_index(self, material: Material) -> int:
        """Return the position of ``material`` in this document."""
        for index, candidate in enumerate(self.materials):
            if candidate is material:
                return index
        raise ValueError("material does not belong to this document")

    def texture_index(self, texture: Texture) -> int:
        """Return the position of ``texture`` in this document."""
        for index, candidate in enumerate(self.textures):
            if candidate is texture:
                return index
        raise ValueError("texture does not belong to this document")


def _load_uri(uri: str, base_dir: Path) -> bytes:
    if uri.startswith("data:"):
        header, sep, payload = uri.partition(",")
        if not sep:
            raise GltfError("malformed data URI")
        if header.endswith(";base64"):
            try:
                return base64.b64decode(payload, validate=True)
            except ValueError as exc:
                raise GltfError("invalid base64 in data URI") from exc
        return unquote_to_bytes(payload)
    target = base_dir / unquote(uri)
    try:
        return target.read_bytes()
    except OSError as exc:
        raise GltfError(f"cannot read {target}: {exc}") from exc


def _split_glb(raw: bytes) -> tuple[bytes, bytes | None]:
    if len(raw) < 12:
        raise GltfError("truncated GLB header")
    _, version, length = struct.unpack_from("<4sII", raw, 0)
    if version != 2:
        raise GltfError(f"unsupported GLB version {version}")
    if length > len(raw):
        raise GltfError("GLB length exceeds file size")
    offset = 12
    json_chunk: bytes | None = None
    bin_chunk: bytes | None = None
    while offset + 8 <= length:
        chunk_length, chunk_type = struct.unpack_from("<II", raw, offset)
        start = offset + 8
        end = start + chunk_length
        if end > length:
            raise GltfError("GLB chunk exceeds file size")
        if json_chunk is None:
            if chunk_type != _CHUNK_JSON:
                raise GltfError("first GLB chunk is not JSON")
            json_chunk = raw[start:end]
        elif chunk_type == _CHUNK_BIN and bin_chunk is None:
            bin_chunk = raw[start:end]
        offset = end
    if json_chunk is None:
        raise GltfError("GLB has no JSON chunk")
    return json_chunk, bin_chunk


def _texture_view(info: dict | None, textures: list[Texture]) -> TextureView | None:
    if info is None:
        return None
    transform = None
    extension = info.get("extensions", {}).get("KHR_texture_transform")
    if extension is not None:
        offset = extension.get("offset", (0.0, 0.0))
        scale = extension.get("scale", (1.0, 1.0))
        transform = TextureTransform(
            offset=(float(offset[0]), float(offset[1])),
            rotation=float(extension.get("rotation", 0.0)),
            scale=(float(scale[0]), float(scale[1])),
            texcoord=extension.get("texCoord"),
        )
    return TextureView(textures[info["index"]], int(info.get("texCoord", 0)), transform)


def _optional_tuple(values, size: int):
    if values is None:
        return None
    if len(values) != size:
        raise GltfError(f"expected {size} values, got {len(values)}")
    return tuple(float(v) for v in values)


def _build(gltf: dict, base_dir: Path, bin_chunk: bytes | None, path: Path) -> Document:
    buffers: list[bytes] = []
    for index, spec in enumerate(gltf.get("buffers", [])):
        if "uri" in spec:
            data = _load_uri(spec["uri"], base_dir)
        elif index == 0 and bin_chunk is not None:
            data = bin_chunk
        else:
            raise GltfError(f"buffer {index} has no data")
        if spec["byteLength"] > len(data):
            raise GltfError(f"buffer {index} is shorter than its byteLength")
        buffers.append(data)

    views: list[tuple[bytes, int]] = []
    for index, spec in enumerate(gltf.get("bufferViews", [])):
        buffer = buffers[spec["buffer"]]
        start = spec.get("byteOffset", 0)
        end = start + spec["byteLength"]
        if end > len(buffer):
            raise GltfError(f"buffer view {index} exceeds its buffer")
        views.append((buffer[start:end], spec.get("byteStride", 0)))

    def checked(accessor: Accessor, label: str) -> Accessor:
        if accessor.data is not None and accessor._end() > len(accessor.data):
            raise GltfError(f"{label} exceeds its buffer view")
        return accessor

    accessors: list[Accessor] = []
    for index, spec in enumerate(gltf.get("accessors", [])):
        data, stride = (None, 0)
        if "bufferView" in spec:
            data, stride = views[spec["bufferView"]]
        accessor = checked(
            Accessor(
                component_type=spec["componentType"],
                type=spec["type"],
                count=spec["count"],
                normalized=bool(spec.get("normalized", False)),
                data=data,
                byte_offset=spec.get("byteOffset", 0),
                byte_stride=stride,
            ),
            f"accessor {index}",
        )
        sparse = spec.get("sparse")
        if sparse is not None:
            idx_spec, val_spec = sparse["indices"], sparse["values"]
            sparse_indices = checked(
                Accessor(
                    idx_spec["componentType"], "SCALAR", sparse["count"],
                    data=views[idx_spec["bufferView"]][0],
                    byte_offset=idx_spec.get("byteOffset", 0),
                ),
                f"sparse indices of accessor {index}",
            )
            sparse_values = checked(
                Accessor(
                    accessor.component_type, accessor.type, sparse["count"],
                    data=views[val_spec["bufferView"]][0],
                    byte_offset=val_spec.get("byteOffset", 0),
                ),
                f"sparse values of accessor {index}",
            )
            for i in range(sparse["count"]):
                target = sparse_indices.read_index(i)
                if target >= accessor.count:
                    raise GltfError(f"sparse index {target} out of range in accessor {index}")
                accessor.sparse[target] = sparse_values._raw(i)
        accessors.append(accessor)

    base = base_dir
    images = []
    for spec in gltf.get("images", []):
        embedded = views[spec["bufferView"]][0] if "bufferView" in spec else None
        images.append(
            Image(
                name=spec.get("name", ""),
                uri=spec.get("uri"),
                mime_type=spec.get("mimeType"),
                embedded=embedded,
                base_dir=base,
            )
        )

    samplers = [
        Sampler(
            wrap_s=spec.get("wrapS", 10497),
            wrap_t=spec.get("wrapT", 10497),
            mag_filter=spec.get("magFilter"),
            min_filter=spec.get("minFilter"),
        )
        for spec in gltf.get("samplers", [])
    ]

    textures = [
        Texture(
            name=spec.get("name", ""),
            image=images[spec["source"]] if "source" in spec else None,
            sampler=samplers[spec["sampler"]] if "sampler" in spec else None,
        )
        for spec in gltf.get("textures", [])
    ]

    materials = []
    for spec in gltf.get("materials", []):
        material = Material(name=spec.get("name", ""))
        pbr = spec.get("pbrMetallicRoughness")
        if pbr is not None:
            material.has_pbr_metallic_roughness = True
            material.base_color_texture = _texture_view(pbr.get("baseColorTexture"), textures)
            material.metallic_roughness_texture = _texture_view(
                pbr.get("metallicRoughnessTexture"), textures
            )
        glossiness = spec.get("extensions", {}).get("KHR_materials_pbrSpecularGlossiness")
        if glossiness is not None:
            material.has_pbr_specular_glossiness = True
            material.diffuse_texture = _texture_view(glossiness.get("diffuseTexture"), textures)
        material.normal_texture = _texture_view(spec.get("normalTexture"), textures)
        material.occlusion_texture = _texture_view(spec.get("occlusionTexture"), textures)
        materials.append(material)

    meshes = []
    for mesh_index, spec in enumerate(gltf.get("meshes", [])):
        primitives = []
        for prim in spec["primitives"]:
            attributes = {name: accessors[i] for name, i in prim["attributes"].items()}
            counts = {accessor.count for accessor in attributes.values()}
            if len(counts) > 1:
                raise GltfError(f"mesh {mesh_index} has attributes of different lengths")
            indices = accessors[prim["indices"]] if "indices" in prim else None
            if indices is not None and counts:
                vertex_count = counts.pop()
                if any(indices.read_index(i) >= vertex_count for i in range(indices.count)):
                    raise GltfError(f"mesh {mesh_index} has an index out of range")
            primitives.append(
                Primitive(
                    mode=prim.get("mode", TRIANGLES),
                    attributes=attributes,
                    indices=indices,
                    material=materials[prim["material"]] if "material" in prim else None,
                )
            )
        meshes.append(Mesh(spec.get("name", ""), primitives))

    node_specs = gltf.get("nodes", [])
    nodes = [
        Node(
            name=spec.get("name", ""),
            mesh=meshes[spec["mesh"]] if "mesh" in spec else None,
            matrix=_optional_tuple(spec.get("matrix"), 16),
            translation=_optional_tuple(spec.get("translation"), 3),
            rotation=_optional_tuple(spec.get("rotation"), 4),
            scale=_optional_tuple(spec.get("scale"), 3),
        )
        for spec in node_specs
    ]
    for node, spec in zip(nodes, node_specs):
        for child_index in spec.get("children", []):
            child = nodes[child_index]
            if child.parent is not None:
                raise GltfError(f"node {child_index} has more than one parent")
            child.parent = node
            node.children.append(child)
    for node in nodes:
        seen = {id(node)}
        ancestor = node.parent
        while ancestor is not None:
            if id(ancestor) in seen:
                raise GltfError("node hierarchy contains a cycle")
            seen.add(id(ancestor))
            ancestor = ancestor.parent

    return Document(
        path=path,
        accessors=accessors,
        meshes=meshes,
        nodes=nodes,
        materials=materials,
        textures=textures,
        images=images,
        samplers=samplers,
    )


def load_gltf(path) -> Document:
    """Parse and validate a .gltf or .glb file, loading all its buffers."""
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise GltfError(f"cannot read {path}: {exc}") from exc

    if raw[:4] == _GLB_MAGIC:
        json_bytes, bin_chunk = _split_glb(raw)
    else:
        json_bytes, bin_chunk = raw, None

    try:
        gltf = json.loads(json_bytes.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise GltfError(f"invalid JSON in {path}") from exc
    if not isinstance(gltf, dict):
        raise GltfError(f"{path} does not hold a glTF object")

    try:
        return _build(gltf, path.parent, bin_chunk, path)
    except GltfError:
        raise
    except (KeyError, IndexError, TypeError, ValueError, struct.error) as exc:
        raise GltfError(f"malformed glTF document {path}: {exc}") from exc