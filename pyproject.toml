[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sionet"
version = "0.1.0"
description = "Socket.IO client with namespace sockets, plus a small TCP text socket helper"
requires-python = ">=3.10"
dependencies = [
    "websocket-client",
]
keywords = ["socket.io", "websocket", "engine.io", "tcp", "networking"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["sionet"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
