[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ctgmonitor"
version = "0.1.0"
description = "Service that collects CTG sensor readings over WebSockets, stores them in SQLite and relays them to an ML service and frontend clients"
requires-python = ">=3.10"
keywords = ["ctg", "cardiotocography", "websocket", "sensors", "monitoring", "aiohttp", "sqlite"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Framework :: AsyncIO",
    "Framework :: aiohttp",
    "Intended Audience :: Healthcare Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Scientific/Engineering :: Medical Science Apps.",
]
dependencies = [
    "aiohttp>=3.9",
    "pyyaml>=6.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "pytest-asyncio>=0.23",
]

[project.scripts]
ctgmonitor = "ctgmonitor.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["ctgmonitor"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
