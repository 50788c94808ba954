[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "zeroframe"
version = "0.1.0"
description = "Building blocks for backend services: SQL query builders, a framed binary message format, MQTT packet handling, socket servers and HTTP helpers."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "framework",
    "sql",
    "query-builder",
    "mqtt",
    "tcp",
    "udp",
    "socket-server",
    "protocol",
    "wsgi",
]
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
    "Topic :: Software Development :: Libraries :: Application Frameworks",
    "Topic :: Database",
    "Topic :: Internet :: WWW/HTTP :: WSGI",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["zeroframe"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
