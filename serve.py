"""Serve the PO tracker with werkzeug's threaded server."""

from __future__ import annotations

import os

from dotenv import load_dotenv
from werkzeug.serving import make_server

from app import create_app


def run_server() -> None:
    load_dotenv()

    app = create_app()
    host = os.environ.get("HOST", "127.0.0.1")
    port = int(os.environ.get("PORT", "5000"))

    server = make_server(host, port, app, threaded=True)
    app.logger.info("Serving on http://%s:%s", host, port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    run_server()
