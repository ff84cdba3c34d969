"""
GPT Explainer Backend (FastAPI)

What this backend does:
- Exposes:
  - GET  /health
  - POST /api/gpt/question              one practice question
  - POST /api/gpt/getTestQuestions      a 15 question exam set
  - POST /api/gpt/getExploreContent     social-media styled explanation
  - POST /api/gpt/streamExploreContent  explanation + related topics, streamed as NDJSON
- Generates everything with an LLM (Google Gemini by default, OpenAI with LLM_PROVIDER=openai).

Run backend:
1) python -m venv .venv && source .venv/bin/activate
2) pip install -e .
3) create .env with GEMINI_API_KEY (or LLM_PROVIDER=openai and OPENAI_API_KEY)
4) gpt-backend        (or: uvicorn gpt_backend.main:app --reload --port 3000)
"""

from __future__ import annotations

import json
import logging
from typing import Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from gpt_backend.config import Settings, configure_logging, get_settings
from gpt_backend.errors import RateLimitExceeded, ServiceError, ValidationError
from gpt_backend.llm import build_client
from gpt_backend.models import ExamSetRequest, ExploreQueryRequest, ExploreRequest, QuestionRequest
from gpt_backend.rate_limit import SlidingWindowLimiter, default_windows, enforce_rate_limit
from gpt_backend.retry import RetryPolicy
from gpt_backend.service import GPTService

logger = logging.getLogger(__name__)


def get_service(request: Request) -> GPTService:
    return request.app.state.gpt_service


def _required(value: str, name: str) -> str:
    value = value.strip()
    if not value:
        raise ValidationError(f"Missing required parameters: {name}")
    return value


# -----------------------------
# Error handlers
# -----------------------------
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p != "body"]
        fields.append(".".join(loc) or "body")
    message = "Missing required parameters: " + ", ".join(dict.fromkeys(fields))
    logger.info("Rejected request to %s: %s", request.url.path, message)
    return JSONResponse(status_code=400, content={"error": message})


async def handle_service_error(request: Request, exc: ServiceError) -> JSONResponse:
    logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def handle_rate_limit(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "limitReached": True},
    )


# -----------------------------
# API routes
# -----------------------------
router = APIRouter(prefix="/api/gpt", dependencies=[Depends(enforce_rate_limit)])


@router.post("/question")
def question(req: QuestionRequest, service: GPTService = Depends(get_service)):
    logger.info("Request received for question")
    result = service.get_playground_question(_required(req.topic, "topic"), req.level, req.userContext)
    return {"data": result.model_dump(exclude_none=True), "error": False}


@router.post("/getTestQuestions")
def get_test_questions(req: ExamSetRequest, service: GPTService = Depends(get_service)):
    logger.info("Request received for test questions: %s / %s", req.topic, req.examType)
    questions = service.get_test_questions(_required(req.topic, "topic"), _required(req.examType, "examType"))
    return {"data": [q.model_dump(exclude_none=True) for q in questions], "error": False}


@router.post("/getExploreContent")
def get_explore_content(req: ExploreQueryRequest, service: GPTService = Depends(get_service)):
    logger.info("Request received for getExploreContent")
    return {"data": service.explore_query(_required(req.query, "query"), req.userContext), "error": False}


@router.post("/streamExploreContent")
def stream_explore_content(req: ExploreRequest, service: GPTService = Depends(get_service)):
    logger.info("Request received for streamExploreContent")
    chunks = service.stream_explore_content(_required(req.query, "query"), req.userContext)

    # Pull the first chunk before committing to a 200 so an upstream
    # failure can still be reported as a plain error response.
    try:
        first = next(chunks, None)
    except Exception:
        logger.error("Error in streaming", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Streaming failed"})

    def body():
        if first is not None:
            yield first.to_line()
        try:
            for chunk in chunks:
                yield chunk.to_line()
        except Exception as e:
            logger.error("Streaming failed mid-response", exc_info=True)
            yield json.dumps({"error": str(e)}) + "\n"

    return StreamingResponse(body(), media_type="application/json")


# -----------------------------
# FastAPI app
# -----------------------------
def create_app(settings: Optional[Settings] = None, service: Optional[GPTService] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="GPT Explainer Backend", version="1.0.0")
    app.state.settings = settings
    if service is None:
        logger.info("Using %s model %s", settings.llm_provider, settings.active_model)
    app.state.gpt_service = service or GPTService(
        build_client(settings),
        RetryPolicy(
            max_attempts=settings.stream_max_retries,
            base_delay=settings.stream_retry_base_delay,
        ),
    )
    app.state.rate_limiter = SlidingWindowLimiter(default_windows(settings))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(ServiceError, handle_service_error)
    app.add_exception_handler(RateLimitExceeded, handle_rate_limit)

    @app.get("/health")
    def health():
        """
        Quick status endpoint for the frontend.
        """
        client = app.state.gpt_service.client
        return {"status": "ok", "provider": client.name, "model": client.model}

    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    logger.info("Server running on http://%s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
