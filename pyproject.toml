[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ylineworker"
version = "0.0.1"
description = "Worker side of the YLine distributed task scheduling system."
requires-python = ">=3.11"
keywords = ["scheduler", "distributed", "worker", "websocket", "gpu", "nvml", "usage"]
classifiers = [
    "Development Status :: 2 - Pre-Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Operating System :: Microsoft :: Windows",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "psutil",
    "aiohttp",
    "filelock",
    "rich",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
ylineworker = "ylineworker.service:main"
ylineworker-ui = "ylineworker.ui:main"

[tool.hatch.build.targets.wheel]
packages = ["ylineworker"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
