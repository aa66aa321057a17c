[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "naiscli"
version = "0.1.0"
description = "Command line utility for the Nais platform: kubeconfig, Aiven applications, debug containers and device checks"
requires-python = ">=3.10"
keywords = ["nais", "kubernetes", "kubeconfig", "aiven", "gcloud", "kubectl", "cli"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "pyyaml",
    "requests",
    "psutil",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
nais = "naiscli.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["naiscli"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
