[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "zcpoll"
version = "0.1.0"
description = "Zero-copy linked buffers, nocopy reader/writer adapters, poller management and socket helpers"
requires-python = ">=3.10"
dependencies = []
keywords = ["buffer", "zero-copy", "nocopy", "poll", "load-balancing", "networking", "sockets", "readv", "writev"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["zcpoll"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
