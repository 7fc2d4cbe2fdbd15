from typing import Awaitable, Callable

from fastapi import FastAPI, Request, Response

from .routers import availabilities, reservations
from .utils.request_id import REQUEST_ID_HEADER, generate_request_id, reset_request_id, set_request_id

app = FastAPI(title="Reservation Pricing API")


async def request_id_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
    token = set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        reset_request_id(token)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


app.middleware("http")(request_id_middleware)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(availabilities.router)
app.include_router(reservations.router)
