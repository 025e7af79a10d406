[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "netlab"
version = "0.1.0"
description = "Small TCP and UDP socket servers and clients: upper-casing echo servers on threads, select, poll, selectors and a callback reactor, plus readiness demos and broadcast and multicast senders."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "socket",
    "tcp",
    "udp",
    "echo",
    "select",
    "poll",
    "epoll",
    "selectors",
    "multicast",
    "broadcast",
    "networking",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: Education",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-timeout",
]

[project.scripts]
netlab-byteorder = "netlab.byteorder:main"
netlab-echo = "netlab.echo:main"
netlab-client = "netlab.client:main"
netlab-multiplex = "netlab.multiplex:main"
netlab-reactor = "netlab.reactor:main"
netlab-edge = "netlab.edge:main"
netlab-udp = "netlab.udp:main"

[tool.hatch.build.targets.wheel]
packages = ["netlab"]

[tool.hatch.build.targets.sdist]
include = [
    "netlab",
    "tests",
    "pyproject.toml",
]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
