import json
import os
from typing import Any, Dict

from tracker.api.main import app


# PUBLIC_INTERFACE
def build_openapi_schema() -> Dict[str, Any]:
    """OpenAPI schema of the app (REST routes live under /api/v1) plus WebSocket docs."""
    openapi_schema = app.openapi()

    # Inject non-standard extension with WebSocket endpoint docs
    openapi_schema["x-websocket-endpoints"] = [
        {
            "path": "/ws/floor",
            "summary": "Real-time operation started/completed events",
            "query": ["production_order_id?"],
            "messages": {
                "client_to_server": ["ping"],
                "server_to_client": ["operation.started", "operation.completed"],
            },
        },
    ]
    return openapi_schema


def main(output_dir: str = "interfaces") -> str:
    os.makedirs(output_dir, exist_ok=True)
    output_path = os.path.join(output_dir, "openapi.json")
    with open(output_path, "w") as f:
        json.dump(build_openapi_schema(), f, indent=2)
    return output_path


if __name__ == "__main__":
    main()
