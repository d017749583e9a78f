# backend/core/dependencies.py

from typing import Any

from fastapi import Request


class Service:
    """
    FastAPI dependency that resolves a named service from the app container.

        @router.get("/x")
        async def handler(pipeline = Depends(Service("chat_pipeline"))): ...
    """
    def __init__(self, name: str):
        self.name = name

    def __call__(self, request: Request) -> Any:
        return request.app.state.container.resolve(self.name)
