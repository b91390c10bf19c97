[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "insightd"
version = "0.1.0"
description = "A small observability service that collects logs, endpoint metrics, traces and spans over HTTP and stores them in SQLite."
requires-python = ">=3.10"
keywords = ["observability", "logging", "metrics", "tracing", "spans", "monitoring", "sqlite"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
    "Topic :: System :: Logging",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]
dependencies = [
    "flask",
    "python-dotenv",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
insightd = "insightd.app:main"

[tool.hatch.build.targets.wheel]
packages = ["insightd"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
