"""
asgi.py -- Application assembly for Notebox.

This is the ONLY file that imports from both api/ and web/. It joins the two
independent layers into a single ASGI app without coupling them to each other.
api/main.py knows nothing about web/; web/routes.py knows nothing about api/.

Run with:  uvicorn asgi:app --reload
           python main.py
"""

from api.main import app
from web.routes import router as web_router
from web.session import SessionMiddleware

# Mount the web UI router here, not in api/main.py.
# This keeps api/ and web/ independent -- neither imports from the other.
app.include_router(web_router, tags=["Web UI"])

# Resolves request.state.user from the gonotes_token cookie for the UI routes.
app.add_middleware(SessionMiddleware)
