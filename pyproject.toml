[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ramkernel"
version = "0.1.0"
description = "Simulated kernel memory management and an in-memory naming service"
requires-python = ">=3.10"
dependencies = []
keywords = ["kernel", "paging", "frame-allocator", "virtual-memory", "tmpfs", "simulation"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Operating System Kernels",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ramkernel"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
