from fastapi import APIRouter
from starlette.requests import Request
from starlette.responses import Response
from prometheus_client import REGISTRY
from prometheus_client.exposition import choose_encoder

router = APIRouter()


@router.get("", response_class=Response)
async def metrics(request: Request) -> Response:
    """Expose Prometheus metrics, in OpenMetrics format when the scraper asks for it."""
    encoder, content_type = choose_encoder(request.headers.get("accept", ""))
    return Response(encoder(REGISTRY), headers={"Content-Type": content_type})
