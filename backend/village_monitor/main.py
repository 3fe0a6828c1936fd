import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .errors import IngestError
from .routers import alerts, devices, esp32, readings, realtime

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Village Office Monitor")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(IngestError)
async def ingest_error_handler(request: Request, exc: IngestError):
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


# route registration
app.include_router(esp32.router)
app.include_router(devices.router)
app.include_router(alerts.router)
app.include_router(readings.router)
app.include_router(realtime.router)


@app.get("/health")
def health():
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("village_monitor.main:app", host="0.0.0.0", port=8000, reload=True)
