# routers/v1/__init__.py
from fastapi import APIRouter

from . import (
    auth, cutting, stitching, jeans_assembly, washing, washing_in, finishing, operator,
)

api_v1 = APIRouter()
api_v1.include_router(auth.router)
api_v1.include_router(cutting.router)
# stage routers, in chain order
api_v1.include_router(stitching.router)
api_v1.include_router(jeans_assembly.router)
api_v1.include_router(washing.router)
api_v1.include_router(washing_in.router)
api_v1.include_router(finishing.router)
api_v1.include_router(operator.router)

__all__ = ["api_v1"]
