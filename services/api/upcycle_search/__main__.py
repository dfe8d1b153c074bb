import uvicorn

from upcycle_search.config import settings


def main() -> None:
    uvicorn.run(
        "upcycle_search.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    main()
