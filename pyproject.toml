[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "riscysim"
version = "0.1.0"
description = "Cycle-level simulator of a pipelined RV32I subset with two load/store units, branch prediction and a data cache"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "risc-v",
    "rv32i",
    "simulator",
    "pipeline",
    "computer-architecture",
    "branch-prediction",
    "cache",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Education",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
riscysim = "riscysim.simulator:main"

[tool.hatch.build.targets.wheel]
packages = ["riscysim"]

[tool.pytest.ini_options]
addopts = "-ra"
