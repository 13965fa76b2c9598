#!/usr/bin/env python3
"""
ci-server: minimal continuous-integration server.
Receives GitHub push webhooks, builds the pushed commit out-of-tree and
reports the outcome as a commit status, a chat message and a history file.
"""
from fastapi import FastAPI
from fastapi.responses import HTMLResponse

from ciserver.api.builds import router as builds_router
from ciserver.api.metrics import router as metrics_router
from ciserver.api.webhook import router as webhook_router
from ciserver.core.config import get_ci_config
from ciserver.core.history_store import history_store
from ciserver.core.logging import setup_logging
from ciserver.core.request_logging import RequestLoggingMiddleware

VERSION = "1.0.0"

config = get_ci_config()

# Setup structured JSON logging
setup_logging(config.log_level)

# Point the shared history store at the configured directory and create it
history_store.history_dir = config.history_dir
history_store.ensure_dir()

app = FastAPI(
    title="ci-server",
    description="Continuous integration server for GitHub push webhooks",
    version=VERSION,
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(webhook_router)
app.include_router(builds_router)
app.include_router(metrics_router)


@app.get("/", response_class=HTMLResponse)
def root():
    """Root homepage."""
    return """
    <html>
      <head><title>CI Server</title></head>
      <body style="font-family: Arial; padding: 24px;">
        <h1>CI Server is running</h1>
        <ul>
          <li><a href="/builds">/builds</a> - Build history</li>
          <li><a href="/health">/health</a> - Health check</li>
          <li><a href="/metrics">/metrics</a> - Prometheus metrics</li>
          <li><a href="/docs">/docs</a> - API Documentation</li>
        </ul>
        <p>Point your repository's push webhook at <code>POST /webhook</code>.</p>
      </body>
    </html>
    """


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.listen_host, port=config.port, log_config=None)
