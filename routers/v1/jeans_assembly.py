# routers/v1/jeans_assembly.py
from routers.v1.stages import make_stage_router
from services.stages import JEANS_ASSEMBLY

router = make_stage_router(JEANS_ASSEMBLY)
