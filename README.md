# aemtools

Turns glTF 2.0 models (`.gltf` and `.glb`) into AEM binary model files.

An AEM file written by this package holds, in order:

1. a header: the magic `AEM\x01`, the vertex, index and image buffer sizes
   in bytes (unsigned 64-bit), then the level, texture, mesh and material
   counts and four reserved zero words (unsigned 32-bit);
2. the vertex buffer: per vertex a position, normal, tangent and bitangent
   (three floats each), a UV pair, four bone indices (all `-1`), four bone
   weights (all `0.0`) and an extra bone index (`-1`) — 88 bytes;
3. the index buffer, unsigned 32-bit;
4. the image buffer: the raw pixels of every mip level of every texture;
5. the level table: byte offset and size of each level in the image buffer;
6. the texture table: width, height, channel count, first level, level count
   and the wrap modes for X and Y;
7. the mesh table: first index, index count and material index (`-1` when a
   primitive has no material);
8. the material table: for the base color, normal and metallic/roughness
   slots a texture index (`-1` when unused) and a 3x3 float UV matrix in
   column order.

All values are little-endian.

Every indexed triangle primitive that has positions and normals becomes one
mesh. The transform of the node that references the mesh, combined with all
its ancestors, is baked into the vertices. Missing tangents are rebuilt from
positions, normals and texture coordinates; bitangents come from the cross
product of normal and tangent times the tangent's handedness. Texture mip
chains run down to 1x1 and are produced with bilinear resizing. Textures
must be embedded in the model (images in buffer views); images referenced
by URI are rejected.

Progress and a description of the header, textures, meshes and materials
are printed to standard output while converting.

## Installation

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Command line

Convert one model; the `.aem` file is written next to it with the same base
name:

```
aemtools path/to/model.glb
```

Convert every model named in a `.lst` file, one path per line relative to the
list file's directory (blank lines are skipped):

```
aemtools path/to/models.lst
```

A summary of how many models succeeded and failed ends a list run. Run
without an argument, a file dialog opens to pick the input (when Tk is
available). The exit status is `0` on success and `1` if any export failed.

## Library use

```python
from aemtools.cli import export_file, export_list

export_file("scene.glb")    # True on success
export_list("models.lst")   # True if every listed model converted
```

The steps are also available on their own:

- `aemtools.gltf.load_gltf(path)` parses and checks a model into a
  `Document`; problems raise `GltfError`.
- `aemtools.transform` offers `find_node_for_mesh`, `node_transform` and
  `reconstruct_tangents`.
- `aemtools.geometry.build_geometry(document)` returns a `GeometryOutput`
  with `vertex_buffer_size`, `index_buffer_size`, `write_vertex_buffer`,
  `write_index_buffer` and `write_meshes`.
- `aemtools.texture.build_texture_output(document)` returns a
  `TextureOutput` with `image_buffer_size`, `level_count`,
  `write_image_buffer`, `write_levels` and `write_textures`;
  `wrap_mode_from_gl` maps sampler wrap constants to `TextureWrapMode`.
- `aemtools.material.make_uv_transform(transform)` builds a UV matrix and
  `write_materials(document, stream)` writes the material table.
- `aemtools.header.write_header(document, geometry, textures, stream)`
  writes the header.

`aemtools.scene` and `aemtools.animation` hold a scene graph for skinned and
animated models (`Scene`, `Node`, `Bone`, `SceneMesh`, `Animation`,
`NodeAnim`) with helpers for bone lookup, node transforms, decomposing a
matrix into translation, rotation and scale keys (`decompose`,
`make_channel_for_node`, `transform_channel`), building a bone list
breadth first (`init_animation`) and printing the node tree
(`format_node_hierarchy`).

## What it does not do

- The converter writes no skeleton or animation data: every vertex carries
  empty bone bindings. The scene and animation helpers work on `Scene`
  objects built in code; there is no loader that reads skinned or animated
  models into them, and no writer for bone or animation sections.
- Textures are stored as uncompressed pixels; no block compression is done.