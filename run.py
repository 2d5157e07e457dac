import uvicorn

from affiliate_engine.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run("affiliate_engine.main:app", host="0.0.0.0", port=settings.port)
