[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "simmachine"
version = "0.1.0"
description = "A simulated MIPS workstation: CPU, memory translation, interrupts, timer and network devices"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "mips",
    "emulator",
    "simulator",
    "interrupts",
    "virtual-memory",
    "tlb",
    "operating-systems",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["simmachine"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
