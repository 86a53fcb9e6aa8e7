[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "upplysning"
version = "0.1.0"
description = "Coordinator for machine-learning workflows with feedback loops, workers and an HTTP API"
requires-python = ">=3.10"
dependencies = [
    "aiohttp",
]
keywords = ["workflow", "scheduler", "machine-learning", "pipeline", "feedback-loop", "asyncio"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Framework :: aiohttp",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
upplysning = "upplysning.main:main"

[tool.hatch.build.targets.wheel]
packages = ["upplysning"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
