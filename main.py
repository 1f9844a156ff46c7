#!/usr/bin/env python3
import logging
import os

import uvicorn

from app.app import create_app

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create the FastAPI app
app = create_app()


if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    reload_enabled = os.getenv("RELOAD", "false").lower() == "true"

    logging.getLogger(__name__).info("Starting global report service on %s:%d", host, port)
    uvicorn.run("main:app", host=host, port=port, reload=reload_enabled)
