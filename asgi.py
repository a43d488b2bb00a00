"""
asgi.py -- Application assembly for the notice board.

web/app.py owns the FastAPI instance (lifespan, middleware, exception
handlers); web/routes.py owns the page routes. This file joins them so the
route module can be imported, and tested, without the assembled app.

Run with:  uvicorn asgi:app --reload
"""

from web.app import app
from web.routes import router as web_router

app.include_router(web_router, tags=["Web UI"])
