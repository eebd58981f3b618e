from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from agent_proxy.core.errors import InvalidRequest, ProxyError
from agent_proxy.dependencies import lifespan
from agent_proxy.settings import Settings

from .chat import chat_router
from .health import router as health_router
from .metrics import metrics_router

__version__ = "0.1.0"


async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
	if exc.status_code >= 500:
		logger.error(f"{request.method} {request.url.path} -> {exc.error_kind}: {exc.detail}")
	return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(
	request: Request, exc: RequestValidationError
) -> JSONResponse:
	errors = exc.errors()
	first = errors[0] if errors else {}
	where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
	detail = f"{where}: {first.get('msg')}" if where else str(first.get("msg", "Invalid request"))
	return await proxy_error_handler(request, InvalidRequest(detail))


def create_app(settings: Settings | None = None) -> FastAPI:
	settings = settings or Settings.get()
	app = FastAPI(
		title="Agent Proxy API",
		version=__version__,
		separate_input_output_schemas=False,
		lifespan=lifespan,
	)
	app.state.settings = settings

	app.add_middleware(
		CORSMiddleware,
		allow_origins=settings.CORS_ORIGINS,
		allow_methods=["GET", "POST", "OPTIONS"],
		allow_headers=["Content-Type", "Authorization"],
	)
	app.add_exception_handler(ProxyError, proxy_error_handler)  # type: ignore[arg-type]
	app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]

	app.include_router(health_router, tags=["health"])
	app.include_router(chat_router, tags=["chat"])
	app.include_router(metrics_router, tags=["metrics"])

	return app
