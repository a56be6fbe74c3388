"""ChatFlow API launcher: starts Uvicorn."""
from __future__ import annotations
import logging
import os


def main() -> None:
    import uvicorn

    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    port = int(os.environ.get("PORT", "8080"))
    uvicorn.run("chatflow.main:app", host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
