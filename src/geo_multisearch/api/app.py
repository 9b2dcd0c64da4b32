from fastapi import FastAPI

from geo_multisearch.api.routes.searches import get_engine, router as searches_router, set_engine


app = FastAPI(title="geo-multisearch")


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(searches_router, prefix="/api")


__all__ = ["app", "get_engine", "set_engine"]
