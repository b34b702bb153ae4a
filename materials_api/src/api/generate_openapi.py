"""
Dump the OpenAPI document of the materials service.

Usage: python -m src.api.generate_openapi [output_path]
(default: interfaces/openapi.json; all REST routes live under /api/v1)
"""
from __future__ import annotations

import json
import os
import sys
from typing import List, Optional

from src.api.main import app, openapi_tags

DEFAULT_OUTPUT = os.path.join("interfaces", "openapi.json")


# PUBLIC_INTERFACE
def build_schema() -> dict:
    """Return the OpenAPI schema with every tag description present."""
    schema = app.openapi()
    tags = schema.get("tags", [])
    known = {t.get("name") for t in tags}
    tags.extend(t for t in openapi_tags if t["name"] not in known)
    schema["tags"] = tags
    return schema


# PUBLIC_INTERFACE
def main(argv: Optional[List[str]] = None) -> str:
    """Write the schema to the given path and return that path."""
    args = sys.argv[1:] if argv is None else argv
    output_path = args[0] if args else DEFAULT_OUTPUT
    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(build_schema(), f, indent=2)
    return output_path


if __name__ == "__main__":
    main()
