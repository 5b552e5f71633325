"""FastAPI application exposing the quality scoring engine."""

from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI

from ..config import config
from ..evaluation.ai_evaluator import AIEvaluator
from ..logging_config import get_logger, setup_logging
from ..services.batch_evaluation import BatchEvaluationService, QualityBatchHandler
from ..services.quality_service import QualityEstimationService
from ..services.score_repository import ScoreRepository
from ..services.store import TranslationStore
from .routes import api, sse
from .services.job_manager import JobManager
from .services.quality_jobs import QualityJobQueue

logger = get_logger(__name__)

DATA_FILE_NAME = "translations.json"


def load_default_store(data_dir: Path) -> TranslationStore:
    """Store from <data_dir>/translations.json, or an empty one."""
    data_file = Path(data_dir) / DATA_FILE_NAME
    if data_file.exists():
        logger.info(f"Loading translations from {data_file}")
        return TranslationStore.load(data_file)
    return TranslationStore()


def create_app(
    store: Optional[TranslationStore] = None,
    scores: Optional[ScoreRepository] = None,
    evaluator: Optional[AIEvaluator] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="qualitygate",
        description="Translation quality scoring API",
        version="0.1.0",
    )

    store = store if store is not None else load_default_store(config.data_dir)
    scores = scores if scores is not None else ScoreRepository(config.data_dir)

    quality_service = QualityEstimationService(store, scores, evaluator=evaluator)
    job_manager = JobManager()
    job_queue = QualityJobQueue(job_manager, QualityBatchHandler(quality_service))

    # Store services in app state
    app.state.store = store
    app.state.quality_service = quality_service
    app.state.job_manager = job_manager
    app.state.job_queue = job_queue
    app.state.batch_service = BatchEvaluationService(store, scores, job_queue)

    # Include routers
    app.include_router(api.router, prefix="/api")
    app.include_router(sse.router, prefix="/api")

    return app


app = create_app()


def main():
    """Entry point for the qualitygate-web command."""
    import argparse

    parser = argparse.ArgumentParser(description="Run the qualitygate API server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()

    setup_logging()
    for problem in config.validate():
        logger.warning(problem)

    logger.info(f"Starting qualitygate at http://{args.host}:{args.port}")
    uvicorn.run(
        "qualitygate.web.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
