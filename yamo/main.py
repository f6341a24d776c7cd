from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from yamo.observability import incr_metric, log_event
from yamo.routers import (
    accounts,
    admin,
    books,
    categories,
    reports,
    teams,
    transactions,
    users,
)

app = FastAPI(title="YAMO", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def attach_request_id(request: Request, call_next):
    request_id = (
        request.headers.get("X-Request-ID")
        or request.headers.get("X-Correlation-ID")
        or str(uuid4())
    )
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0]["msg"] if errors else "Invalid request"
    incr_metric("request.invalid", path=request.url.path)
    log_event(
        "request_invalid",
        request_id=getattr(request.state, "request_id", None),
        path=request.url.path,
        message=message,
    )
    return JSONResponse(status_code=400, content={"error": message})


app.include_router(users.router)
app.include_router(teams.router)
app.include_router(books.router)
app.include_router(accounts.router)
app.include_router(categories.router)
app.include_router(transactions.router)
app.include_router(reports.router)
app.include_router(admin.router)


@app.get("/")
async def root():
    return {"status": "ok", "service": "yamo"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
