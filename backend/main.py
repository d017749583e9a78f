# backend/main.py
import os
from dotenv import load_dotenv
load_dotenv()

import uvicorn

from backend.app import create_app

app = create_app()


def run() -> None:
    uvicorn.run(
        "backend.main:app",
        host=os.getenv("PROMPTLOOM_HOST", "127.0.0.1"),
        port=int(os.getenv("PROMPTLOOM_PORT", "8000")),
        reload=os.getenv("PROMPTLOOM_RELOAD", "false").lower() == "true",
    )


if __name__ == "__main__":
    run()
