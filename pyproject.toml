[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "modtools"
version = "0.1.0"
description = "Read kernel module files, their ELF data, builtin modinfo and modprobe configuration"
requires-python = ">=3.10"
keywords = ["kernel", "modules", "modprobe", "modinfo", "elf", "modversions"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Operating System Kernels :: Linux",
]
dependencies = [
    "zstandard",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["modtools"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
