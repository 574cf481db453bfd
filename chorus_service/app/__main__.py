import uvicorn

from chorus_service.core.config import load_settings


def main():
    cfg = load_settings()
    api_cfg = cfg.get("app", {}).get("api", {})
    host = api_cfg.get("host", "127.0.0.1")
    port = api_cfg.get("port", 8080)
    uvicorn.run("chorus_service.app.asgi:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
