[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "aemtools"
version = "0.1.0"
description = "Convert glTF/GLB models into the AEM binary model format"
requires-python = ">=3.10"
keywords = ["gltf", "glb", "aem", "3d", "model", "converter", "mipmaps", "tangents"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Graphics :: Graphics Conversion",
    "Topic :: Multimedia :: Graphics :: 3D Modeling",
]
dependencies = [
    "numpy",
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
aemtools = "aemtools.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["aemtools"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
