from __future__ import annotations

# import name -> distribution name on the index
REQUIRED = {
    "cryptography": "cryptography",
    "structlog": "structlog",
    "pydantic": "pydantic",
    "fastapi": "fastapi",
    "uvicorn": "uvicorn[standard]",
}


def missing_dependencies() -> list[str]:
    missing = []
    for mod, dist in REQUIRED.items():
        try:
            __import__(mod)
        except ImportError:
            missing.append(dist)
    return missing


def check_dependencies() -> tuple[bool, list[str]]:
    missing = missing_dependencies()
    return not missing, missing
