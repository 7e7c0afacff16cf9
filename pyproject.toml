[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "khafi"
version = "0.1.0"
description = "Payment gateway services: Zcash payment monitoring, nullifier replay protection and a proof generation HTTP service."
requires-python = ">=3.10"
keywords = [
    "zcash",
    "zero-knowledge",
    "nullifier",
    "payments",
    "proof",
    "gateway",
    "redis",
]
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
    "Framework :: AsyncIO",
    "Topic :: Security",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Office/Business :: Financial",
]
dependencies = [
    "redis>=5.0.1",
    "starlette>=0.37",
    "httpx>=0.27",
    "uvicorn>=0.29",
    "python-dotenv>=1.0",
]

[project.optional-dependencies]
test = [
    "pytest>=8.0",
    "pytest-asyncio>=0.23",
    "respx>=0.21",
]

[project.scripts]
khafi-backend = "khafi.backend_main:main"
khafi-prover = "khafi.proof_main:main"

[tool.hatch.build.targets.wheel]
packages = ["khafi"]

[tool.hatch.build.targets.sdist]
include = ["khafi", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
