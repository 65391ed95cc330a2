import base64
import json
import struct

import pytest

from aemtools.gltf import Accessor, Document, GltfError, Material, load_gltf

POSITIONS = (0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0, 0.0)
IMAGE_BYTES = b"\x89PNGnotreallyanimage"


def _blob():
    return struct.pack("<9f", *POSITIONS) + struct.pack("<3H", 0, 1, 2) + b"\0\0" + IMAGE_BYTES


def _document(buffer_spec):
    return {
        "asset": {"version": "2.0"},
        "buffers": [buffer_spec],
        "bufferViews": [
            {"buffer": 0, "byteOffset": 0, "byteLength": 36},
            {"buffer": 0, "byteOffset": 36, "byteLength": 6},
            {"buffer": 0, "byteOffset": 44, "byteLength": len(IMAGE_BYTES)},
        ],
        "accessors": [
            {"bufferView": 0, "componentType": 5126, "count": 3, "type": "VEC3"},
            {"bufferView": 1, "componentType": 5123, "count": 3, "type": "SCALAR"},
        ],
        "images": [{"bufferView": 2, "mimeType": "image/png"}],
        "samplers": [{"wrapS": 33071}],
        "textures": [{"source": 0, "sampler": 0}],
        "materials": [
            {
                "name": "mat",
                "pbrMetallicRoughness": {
                    "baseColorTexture": {
                        "index": 0,
                        "extensions": {
                            "KHR_texture_transform": {
                                "offset": [0.5, 0.25],
                                "rotation": 0.5,
                                "scale": [2.0, 3.0],
                            }
                        },
                    }
                },
                "normalTexture": {"index": 0},
            }
        ],
        "meshes": [
            {
                "name": "tri",
                "primitives": [{"attributes": {"POSITION": 0}, "indices": 1, "material": 0}],
            }
        ],
        "nodes": [{"name": "root", "children": [1]}, {"name": "child", "mesh": 0}],
    }


def _write_gltf(tmp_path):
    blob = _blob()
    uri = "data:application/octet-stream;base64," + base64.b64encode(blob).decode()
    path = tmp_path / "model.gltf"
    path.write_text(json.dumps(_document({"uri": uri, "byteLength": len(blob)})))
    return path


def _glb_bytes(gltf, binary, version=2):
    js = json.dumps(gltf).encode()
    js += b" " * (-len(js) % 4)
    binary += b"\0" * (-len(binary) % 4)
    body = (
        struct.pack("<II", len(js), 0x4E4F534A)
        + js
        + struct.pack("<II", len(binary), 0x004E4942)
        + binary
    )
    return b"glTF" + struct.pack("<II", version, 12 + len(body)) + body


def test_positions_read_back(tmp_path):
    doc = load_gltf(_write_gltf(tmp_path))
    accessor = doc.accessors[0]
    values = [v for i in range(accessor.count) for v in accessor.read_float(i)]
    assert tuple(values) == POSITIONS


def test_indices_read_back(tmp_path):
    doc = load_gltf(_write_gltf(tmp_path))
    indices = doc.meshes[0].primitives[0].indices
    assert [indices.read_index(i) for i in range(indices.count)] == [0, 1, 2]


def test_read_out_of_range(tmp_path):
    doc = load_gltf(_write_gltf(tmp_path))
    with pytest.raises(IndexError):
        doc.accessors[0].read_float(3)


def test_node_hierarchy(tmp_path):
    doc = load_gltf(_write_gltf(tmp_path))
    root, child = doc.nodes
    assert child.parent is root
    assert root.children == [child]
    assert child.mesh is doc.meshes[0]
    assert root.parent is None


def test_material_and_texture(tmp_path):
    doc = load_gltf(_write_gltf(tmp_path))
    material = doc.materials[0]
    assert material.has_pbr_metallic_roughness
    assert not material.has_pbr_specular_glossiness
    view = material.base_color_texture
    assert doc.texture_index(view.texture) == 0
    assert view.transform.offset == (0.5, 0.25)
    assert view.transform.scale == (2.0, 3.0)
    assert view.transform.rotation == 0.5
    assert material.normal_texture.transform is None
    assert doc.material_index(doc.meshes[0].primitives[0].material) == 0


def test_sampler_defaults(tmp_path):
    doc = load_gltf(_write_gltf(tmp_path))
    sampler = doc.textures[0].sampler
    assert sampler.wrap_s == 33071
    assert sampler.wrap_t == 10497


def test_embedded_image_data(tmp_path):
    doc = load_gltf(_write_gltf(tmp_path))
    assert doc.textures[0].image.data() == IMAGE_BYTES


def test_foreign_material_index():
    with pytest.raises(ValueError):
        Document().material_index(Material())


def test_glb_matches_gltf(tmp_path):
    blob = _blob()
    path = tmp_path / "model.glb"
    path.write_bytes(_glb_bytes(_document({"byteLength": len(blob)}), blob))
    doc = load_gltf(path)
    assert doc.accessors[0].read_float(1) == POSITIONS[3:6]
    assert doc.images[0].data() == IMAGE_BYTES


def test_glb_bad_version(tmp_path):
    blob = _blob()
    path = tmp_path / "model.glb"
    path.write_bytes(_glb_bytes(_document({"byteLength": len(blob)}), blob, version=1))
    with pytest.raises(GltfError):
        load_gltf(path)


def test_external_buffer(tmp_path):
    blob = _blob()
    (tmp_path / "data.bin").write_bytes(blob)
    path = tmp_path / "model.gltf"
    path.write_text(json.dumps(_document({"uri": "data.bin", "byteLength": len(blob)})))
    doc = load_gltf(path)
    assert doc.accessors[0].read_float(2) == POSITIONS[6:9]


def test_invalid_json(tmp_path):
    path = tmp_path / "broken.gltf"
    path.write_text("{ not json")
    with pytest.raises(GltfError):
        load_gltf(path)


def test_missing_file(tmp_path):
    with pytest.raises(GltfError):
        load_gltf(tmp_path / "absent.gltf")


def test_accessor_exceeding_view(tmp_path):
    blob = _blob()
    gltf = _document({"uri": "data.bin", "byteLength": len(blob)})
    (tmp_path / "data.bin").write_bytes(blob)
    gltf["accessors"][0]["count"] = 4
    gltf["accessors"][1]["count"] = 2
    path = tmp_path / "model.gltf"
    path.write_text(json.dumps(gltf))
    with pytest.raises(GltfError):
        load_gltf(path)


def test_index_out_of_range_rejected(tmp_path):
    blob = struct.pack("<9f", *POSITIONS) + struct.pack("<3H", 0, 1, 7) + b"\0\0" + IMAGE_BYTES
    (tmp_path / "data.bin").write_bytes(blob)
    path = tmp_path / "model.gltf"
    path.write_text(json.dumps(_document({"uri": "data.bin", "byteLength": len(blob)})))
    with pytest.raises(GltfError):
        load_gltf(path)


def test_normalized_unsigned_byte():
    accessor = Accessor(5121, "VEC2", 1, normalized=True, data=bytes([255, 0]))
    assert accessor.read_float(0) == (1.0, 0.0)


def test_normalized_signed_byte_clamps():
    accessor = Accessor(5120, "SCALAR", 1, normalized=True, data=struct.pack("<b", -128))
    assert accessor.read_float(0) == (-1.0,)


def test_accessor_without_view_reads_zeros():
    accessor = Accessor(5126, "VEC3", 2)
    assert accessor.read_float(1) == (0.0, 0.0, 0.0)


def test_sparse_accessor(tmp_path):
    base = struct.pack("<3f", 1.0, 2.0, 3.0)
    sparse_indices = struct.pack("<H", 1) + b"\0\0"
    sparse_values = struct.pack("<f", 9.0)
    blob = base + sparse_indices + sparse_values
    gltf = {
        "asset": {"version": "2.0"},
        "buffers": [{"uri": "s.bin", "byteLength": len(blob)}],
        "bufferViews": [
            {"buffer": 0, "byteOffset": 0, "byteLength": 12},
            {"buffer": 0, "byteOffset": 12, "byteLength": 2},
            {"buffer": 0, "byteOffset": 16, "byteLength": 4},
        ],
        "accessors": [
            {
                "bufferView": 0,
                "componentType": 5126,
                "count": 3,
                "type": "SCALAR",
                "sparse": {
                    "count": 1,
                    "indices": {"bufferView": 1, "componentType": 5123},
                    "values": {"bufferView": 2},
                },
            }
        ],
    }
    (tmp_path / "s.bin").write_bytes(blob)
    path = tmp_path / "sparse.gltf"
    path.write_text(json.dumps(gltf))
    accessor = load_gltf(path).accessors[0]
    assert [accessor.read_float(i)[0] for i in range(3)] == [1.0, 9.0, 3.0]


def test_unknown_component_type():
    with pytest.raises(GltfError):
        Accessor(1234, "SCALAR", 1)