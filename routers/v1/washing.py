# routers/v1/washing.py
from routers.v1.stages import make_stage_router
from services.stages import WASHING

router = make_stage_router(WASHING)
