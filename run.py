import uvicorn

from content_catalog.config import load_settings

if __name__ == "__main__":
    settings = load_settings()
    uvicorn.run(
        "content_catalog.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level,
        access_log=True,
    )
