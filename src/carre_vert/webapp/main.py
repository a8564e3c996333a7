from fastapi import FastAPI

from carre_vert import __version__
from carre_vert.webapp.api import api

app = FastAPI(title="Carré Vert API", version=__version__)

# -----------------------
# API (JSON) under /api/*
# -----------------------
app.include_router(api)
