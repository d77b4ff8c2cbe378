"""
odkit.api - Optional REST API Gateway
=====================================

FastAPI-based REST gateway exposing OData services over HTTP.

The gateway is optional and only needed if you want to run odkit as a
microservice.

Usage
-----
>>> from odkit.api import create_app
>>> app = create_app()
>>> # Run with: uvicorn odkit.api:app

Or run directly:
>>> python -m odkit.api

"""

from pathlib import Path

from dotenv import load_dotenv

# Load .env before the gateway reads its configuration
env_path = Path.cwd() / ".env"
if not env_path.exists():
    env_path = Path(__file__).resolve().parent.parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

from odkit.api.gateway import ODataGateway, create_app, get_gateway  # noqa: E402

# Create default app instance for uvicorn
app = create_app()

__all__ = [
    "create_app",
    "get_gateway",
    "ODataGateway",
    "app",
]
