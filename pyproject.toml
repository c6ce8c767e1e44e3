[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "samaritan"
version = "0.1.0"
description = "Building blocks for a TCP and Redis proxy: RESP codec, buffered reader, backend health checkers, load balancers and connection wrappers."
requires-python = ">=3.10"
dependencies = []
keywords = ["proxy", "redis", "resp", "health-check", "load-balancing", "mysql"]
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
    "Topic :: Internet :: Proxy Servers",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["samaritan"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
