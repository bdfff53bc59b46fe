[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "valiforward"
version = "0.1.0"
description = "Composable log-forwarding clients: batching, timestamp sorting, multi-tenant fan-out, label packing and a disk-backed queue"
requires-python = ">=3.10"
dependencies = []
keywords = ["logging", "vali", "batching", "log-shipping", "multi-tenant", "disk-queue"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Logging",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
valiforward-copy = "valiforward.copytool:main"

[tool.hatch.build.targets.wheel]
packages = ["valiforward"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
