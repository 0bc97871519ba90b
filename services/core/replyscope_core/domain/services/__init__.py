"""Domain services for Replyscope."""

from replyscope_core.domain.services.activity import ActivityLogger
from replyscope_core.domain.services.admission import (
    CreateReportInput,
    ReportAdmissionService,
)
from replyscope_core.domain.services.auth import AuthService, hash_password, verify_password
from replyscope_core.domain.services.checkpoints import StepCheckpointer
from replyscope_core.domain.services.events import EventBus, get_event_bus
from replyscope_core.domain.services.progress import ProgressTracker, ScrapeCapPolicy
from replyscope_core.domain.services.reply_ingest import AcceptanceRules, ReplyIngestService
from replyscope_core.domain.services.scrape_orchestrator import ScrapeOrchestrator
from replyscope_core.domain.services.title import TitleGenerator, get_title_generator

__all__ = [
    "AcceptanceRules",
    "ActivityLogger",
    "AuthService",
    "CreateReportInput",
    "EventBus",
    "ProgressTracker",
    "ReplyIngestService",
    "ReportAdmissionService",
    "ScrapeCapPolicy",
    "ScrapeOrchestrator",
    "StepCheckpointer",
    "TitleGenerator",
    "get_event_bus",
    "get_title_generator",
    "hash_password",
    "verify_password",
]
