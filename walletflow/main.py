from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from walletflow.api.routes import router
from walletflow.backend.errors import ApiError
from walletflow.core.errors import InvalidTransition, ValidationError
from walletflow.settings import settings
from walletflow.observability.logging import log

app = FastAPI(title="Walletflow Transaction Engine")

# Comma-separated; "*" suits a UI served from another local port.
origins = [x.strip() for x in settings.CORS_ORIGINS.split(",") if x.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"kind": exc.kind, "errors": exc.errors})


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    return JSONResponse(status_code=409, content={"kind": exc.kind, "message": str(exc)})


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    if exc.is_auth:
        status_code = 401
    elif exc.is_transient:
        status_code = 503
    else:
        status_code = 502
    try:
        log(event="driver_api_error", path=request.url.path, kind=exc.kind, statusCode=status_code)
    except Exception:
        pass
    return JSONResponse(status_code=status_code, content=exc.to_dict())
