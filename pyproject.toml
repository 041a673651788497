[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "billing-mcp"
version = "0.1.0"
description = "Model Context Protocol server exposing invoice lookups backed by PostgreSQL"
requires-python = ">=3.10"
keywords = ["mcp", "billing", "invoices", "postgresql", "sse", "json-rpc"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Framework :: AsyncIO",
    "Intended Audience :: Developers",
    "Intended Audience :: Financial and Insurance Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial :: Accounting",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]
dependencies = [
    "pyyaml>=6.0",
    "sqlalchemy>=2.0",
    "aiohttp>=3.9",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "pytest-asyncio>=0.23",
]

[project.scripts]
billing-mcp = "billing_mcp.main:main"

[tool.hatch.build.targets.wheel]
packages = ["billing_mcp"]

[tool.hatch.build.targets.sdist]
include = ["billing_mcp", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
