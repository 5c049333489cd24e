[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "symbolstash"
version = "0.1.0"
description = "Configuration, on-disk cache management, logging setup and API error bodies for a symbol server"
requires-python = ">=3.10"
keywords = ["symbols", "debugging", "cache", "symbol-server", "configuration"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Debuggers",
    "Topic :: System :: Logging",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
symbolstash = "symbolstash.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["symbolstash"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
