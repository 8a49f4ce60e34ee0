[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "higoweb"
version = "0.1.0"
description = "A small WSGI web framework with flagged routes, CORS and token-auth middleware, validation rules, lifecycle events, a dependency container and keyed locks."
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = ["wsgi", "web", "framework", "middleware", "routing", "validation", "dependency-injection"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
    "Topic :: Software Development :: Libraries :: Application Frameworks",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["higoweb"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
