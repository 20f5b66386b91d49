from fastapi import APIRouter

from ...external import upstream_states

router = APIRouter()


@router.get("/health")
def health():
    return {"ok": True, "upstreams": upstream_states()}
