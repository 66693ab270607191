[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "analyzerlink"
version = "1.0.0"
description = "Device communication layer for a laboratory analyzer: Modbus RTU sessions, serial printing, TCP forwarding and a 4G uplink client."
requires-python = ">=3.10"
keywords = ["modbus", "modbus-rtu", "serial", "analyzer", "laboratory", "4g", "tcp"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Healthcare Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Medical Science Apps.",
    "Topic :: System :: Hardware",
]
dependencies = [
    "pyserial>=3.5",
    "filelock>=3.12",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[tool.hatch.build.targets.wheel]
packages = ["analyzerlink"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
