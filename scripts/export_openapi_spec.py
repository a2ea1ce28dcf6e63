#!/usr/bin/env python3
"""Export the OpenAPI specification to a file for frontend development."""

import json
import sys
import os
from pathlib import Path

# Add parent directory to path to import assistant_hub
sys.path.insert(0, str(Path(__file__).parent.parent))

from assistant_hub.main import app


def export_openapi_spec(output_path: str = "openapi.json") -> Path:
    """Write the assistant API schema to ``output_path``."""
    openapi_schema = app.openapi()

    output_file = Path(output_path)
    with open(output_file, "w") as f:
        json.dump(openapi_schema, f, indent=2)

    paths = sorted(openapi_schema.get("paths", {}))
    print(f"OpenAPI specification exported to: {output_file.absolute()}")
    print(f"   {len(paths)} paths, {output_file.stat().st_size:,} bytes")
    for path in paths:
        print(f"   - {path}")

    return output_file


if __name__ == "__main__":
    output_path = os.getenv("OPENAPI_OUTPUT", "openapi.json")

    if len(sys.argv) > 1:
        output_path = sys.argv[1]

    export_openapi_spec(output_path)
