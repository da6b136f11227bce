[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mitosis"
version = "0.1.0"
description = "Binary Merkle Patricia tries, trie sync and sharded block data types with RLP encoding and Keccak-256 hashing"
requires-python = ">=3.10"
keywords = ["merkle", "patricia", "trie", "rlp", "keccak", "sharding", "blockchain", "bloom filter"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: System :: Distributed Computing",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "pycryptodome",
]

[project.optional-dependencies]
test = [
    "pytest",
    "hypothesis",
]

[tool.hatch.build.targets.wheel]
packages = ["mitosis"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
