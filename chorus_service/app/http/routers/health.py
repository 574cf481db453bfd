from fastapi import APIRouter, Request

from chorus_service.core.errors import ChorusError

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    return {"ok": True}


@router.get("/readyz")
async def readyz(request: Request):
    """
    Provider: lists at least one model.
    Tools: the tool transport answers list_tools.
    """
    svc = request.app.state.gen_svc
    try:
        models = svc.list_models()
    except Exception as e:
        return {"ready": False, "provider": False, "tools": None, "error": str(e)}

    try:
        tools = await svc.list_tools()
    except ChorusError as e:
        return {"ready": False, "provider": bool(models), "tools": False, "error": e.message}

    return {"ready": bool(models), "provider": bool(models), "tools": True, "tool_count": len(tools),
            "active_streams": len(svc.registry)}
