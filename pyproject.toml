[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cvmachine"
version = "1.0.0"
description = "Two small register-based bytecode virtual machines, with a constant-folding pass and a dead-code pass"
requires-python = ">=3.10"
dependencies = []
keywords = ["virtual machine", "bytecode", "interpreter", "register machine"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Interpreters",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
cvm = "cvmachine.core:main"
cvm-asm = "cvmachine.asm_vm:main"

[tool.hatch.build.targets.wheel]
packages = ["cvmachine"]

[tool.pytest.ini_options]
addopts = "-ra"
