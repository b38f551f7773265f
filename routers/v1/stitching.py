# routers/v1/stitching.py
from routers.v1.stages import make_stage_router
from services.stages import STITCHING

router = make_stage_router(STITCHING)
