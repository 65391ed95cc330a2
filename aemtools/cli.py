"""Command line entry point: convert glTF models, or lists of them, into AEM files."""

from __future__ import annotations

import sys
from pathlib import Path

from .geometry import build_geometry
from .gltf import GltfError, load_gltf
from .header import write_header
from .material import write_materials
from .texture import build_texture_output


def export_file(path) -> bool:
    """Convert one .gltf or .glb file into an .aem file beside it."""
    path = Path(path)
    print(f'*** Exporting "{path}" ***')

    try:
        document = load_gltf(path)
    except GltfError:
        print("ERROR: Parsing input file failed!")
        return False

    try:
        geometry = build_geometry(document)
        textures = build_texture_output(document)
    except (ValueError, IndexError) as exc:
        print(f"ERROR: {exc}")
        return False

    output_path = path.parent / (path.stem + ".aem")
    try:
        with open(output_path, "wb") as stream:
            write_header(document, geometry, textures, stream)
            geometry.write_vertex_buffer(stream)
            geometry.write_index_buffer(stream)
            textures.write_image_buffer(stream)
            textures.write_levels(stream)
            textures.write_textures(stream)
            geometry.write_meshes(stream)
            write_materials(document, stream)
    except (OSError, ValueError) as exc:
        print(f"ERROR: {exc}")
        return False

    print(f'*** Successfully exported "{output_path}" ***\n')
    return True


def export_list(path) -> bool:
    """Convert every model named in a list file, one path per line relative to it."""
    path = Path(path)
    try:
        text = path.read_text()
    except OSError:
        print(f'Error: Failed to open list input file: "{path}"')
        return False

    names = [line.strip() for line in text.splitlines()]
    names = [name for name in names if name]

    successes = sum(export_file(path.parent / name) for name in names)
    file_count = len(names)
    print(
        f"*** Exported {file_count} models ({successes} succeeded, "
        f"{file_count - successes} failed) ***\n"
    )
    return successes == file_count


def _choose_file() -> str | None:
    try:
        import tkinter
        from tkinter import filedialog
    except ImportError as exc:
        raise RuntimeError("no file dialog available") from exc
    try:
        root = tkinter.Tk()
        root.withdraw()
        try:
            chosen = filedialog.askopenfilename(
                filetypes=[
                    ("All files", "*.glb *.gltf *.lst"),
                    ("GLB Models", "*.glb"),
                    ("GLTF Models", "*.gltf"),
                    ("List of Models", "*.lst"),
                ]
            )
        finally:
            root.destroy()
    except tkinter.TclError as exc:
        raise RuntimeError(str(exc)) from exc
    return chosen or None


def main(argv=None) -> int:
    """Export the file given on the command line, or one picked in a dialog."""
    args = sys.argv[1:] if argv is None else list(argv)
    if args:
        filepath = args[0]
    else:
        try:
            filepath = _choose_file()
        except RuntimeError as exc:
            print(f"Error: {exc}")
            return 1
        if filepath is None:
            return 0

    if Path(filepath).suffix == ".lst":
        ok = export_list(filepath)
    else:
        ok = export_file(filepath)
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())