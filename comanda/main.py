# comanda/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import OrderEngineError
from .routes import cart, invoices, orders, promotions
from .settings import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("comanda.api")

app = FastAPI(title="Comanda Orders API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(cart.router)
app.include_router(orders.router)
app.include_router(promotions.router)
app.include_router(invoices.router)


@app.exception_handler(OrderEngineError)
async def _engine_error(request: Request, exc: OrderEngineError):
    if exc.http_status >= 500:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.http_status, content=jsonable_encoder(exc.to_dict()))


@app.get("/")
def root():
    return {"message": "Comanda API is running", "store": settings.store_backend}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("comanda.main:app", host=settings.api_host, port=settings.api_port)
