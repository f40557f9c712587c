"""Launch the toolbox talks API under uvicorn (HOST, PORT, RELOAD, LOG_LEVEL)."""

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "toolboxdb.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "false").lower() in {"1", "true", "yes", "on"},
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
