[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "catchall"
version = "0.1.0"
description = "Catch-all domain detection service that tracks delivered and bounced e-mail events per domain"
requires-python = ">=3.10"
keywords = ["email", "catch-all", "domains", "bounces", "deliverability", "wsgi"]
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
    "Topic :: Communications :: Email",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
]
dependencies = [
    "pymongo",
    "werkzeug",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
catchall-server = "catchall.server:main"

[tool.hatch.build.targets.wheel]
packages = ["catchall"]

[tool.pytest.ini_options]
addopts = "-ra"
