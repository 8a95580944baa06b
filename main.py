"""FastAPI application for the step-driven help-desk chatbot"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment variables
load_dotenv()

from config import Settings, settings as default_settings
from api.routes import chat
from core.conversation import (
    ConversationFlowController,
    ConversationStore,
    StepRegistry,
    StoreConfig,
    build_default_registry,
)

# Setup logging
logging.basicConfig(
    level=default_settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def create_app(app_settings: Optional[Settings] = None,
               registry: Optional[StepRegistry] = None,
               store: Optional[ConversationStore] = None) -> FastAPI:
    """
    Build the application with its engine wired in.

    Args:
        app_settings: Settings to use instead of the environment ones
        registry: Step graph to serve; the help-desk flow by default
        store: Session store; built from settings by default
    """
    app_settings = app_settings or default_settings
    registry = registry or build_default_registry()
    store = store or ConversationStore(
        StoreConfig.from_settings(app_settings, initial_step_id=registry.initial_step_id)
    )
    controller = ConversationFlowController.from_settings(registry, store, app_settings)

    dangling = registry.dangling_targets()
    if dangling:
        logger.warning(f"Step graph has unresolved targets: {dangling}")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {app_settings.SERVICE_NAME} in {app_settings.ENVIRONMENT} mode...")
        store.start_reaper()
        yield
        logger.info(f"Shutting down {app_settings.SERVICE_NAME}...")
        await store.stop_reaper()

    app = FastAPI(
        title="Help Desk Chatbot API",
        version=app_settings.SERVICE_VERSION,
        description="Step-driven conversation engine",
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.flow_controller = controller

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy"}

    app.include_router(chat.router, prefix="/chatbot", tags=["chatbot"])
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8080)
