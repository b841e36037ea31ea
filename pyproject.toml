[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lima"
version = "0.1.0"
description = "Building blocks for Linux virtual machine agents: TCP table parsing, agent HTTP APIs on Unix sockets, host agent events and cached downloads"
requires-python = ">=3.10"
dependencies = []
keywords = ["virtual machine", "guest agent", "host agent", "unix socket", "proc net tcp", "download cache"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Operating System :: MacOS",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["lima"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
