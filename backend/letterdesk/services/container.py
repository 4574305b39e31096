"""
Application services, constructed once at startup and injected into routes.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from ..config import Settings
from ..database import Database
from .content_generation import ContentGenerator, build_content_generator
from .document_renderer import DocumentRenderer
from .lifecycle import GenerationWorkerPool
from .payments import PaymentGateway, build_payment_gateway

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    settings: Settings
    database: Database
    renderer: DocumentRenderer
    generation_pool: GenerationWorkerPool
    content_generator: Optional[ContentGenerator] = None
    payment_gateway: Optional[PaymentGateway] = None

    def close(self) -> None:
        self.generation_pool.shutdown()
        self.database.dispose()


def build_services(
    settings: Settings,
    database: Optional[Database] = None,
    content_generator: Optional[ContentGenerator] = None,
    renderer: Optional[DocumentRenderer] = None,
    payment_gateway: Optional[PaymentGateway] = None,
) -> AppServices:
    """Wire every collaborator from settings; explicit arguments win."""
    database = database or Database(settings.database_url)
    if content_generator is None:
        content_generator = build_content_generator(settings)
    if payment_gateway is None:
        payment_gateway = build_payment_gateway(settings)
    renderer = renderer or DocumentRenderer(settings.pdf_output_dir)
    pool = GenerationWorkerPool(database, content_generator, max_workers=settings.generation_workers)
    return AppServices(
        settings=settings,
        database=database,
        renderer=renderer,
        generation_pool=pool,
        content_generator=content_generator,
        payment_gateway=payment_gateway,
    )


def get_services(request: Request) -> AppServices:
    """FastAPI dependency."""
    return request.app.state.services
