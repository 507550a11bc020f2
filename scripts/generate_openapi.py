#!/usr/bin/env python3
"""Generate the OpenAPI specification of the upload progress server.

Run this whenever the server routes or models change so the committed
schema matches the implementation.

Usage:
    python scripts/generate_openapi.py
"""

import json
import sys
from pathlib import Path

try:
    from card_uploads.server.main import create_app

    # The upload API is only built at startup, so no configuration is needed here
    app = create_app()
    schema = app.openapi()

    docs_dir = Path(__file__).parent.parent / "docs" / "api"
    docs_dir.mkdir(parents=True, exist_ok=True)

    openapi_file = docs_dir / "openapi.json"
    with open(openapi_file, "w") as f:
        json.dump(schema, f, indent=2)

    print(f"✅ Generated OpenAPI spec: {openapi_file}")
    print(f"📊 Found {len(schema.get('paths', {}))} endpoints")

    for path, methods in schema.get("paths", {}).items():
        for method in methods.keys():
            if method != "parameters":
                print(f"   {method.upper()} {path}")

except ImportError as e:
    print(f"❌ Import error: {e}")
    print("💡 Install the package first: pip install -e .")
    sys.exit(1)
except Exception as e:
    print(f"❌ Error generating OpenAPI: {e}")
    sys.exit(1)
