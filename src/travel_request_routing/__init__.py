"""Travel Request Routing - office approval pipeline for institutional travel requests."""

from .aggregate import RequestFields, apply_transition, create_request
from .audit import AuditLog
from .dashboard import (
    AuditTrackingRow,
    DashboardProjector,
    DashboardSnapshot,
    StatusCounters,
    action_required,
    audit_tracking,
    my_files,
    my_requests,
    status_counters,
)
from .exceptions import (
    AuthorizationError,
    ConflictError,
    RequestNotFoundError,
    RoutingError,
    StorageError,
    ValidationError,
)
from .models import (
    ActingContext,
    Actor,
    ApprovalEntry,
    Attachment,
    AttachmentUpload,
    TERMINAL_STATUSES,
    TravelRequest,
    TravelType,
    Verdict,
)
from .offices import (
    Office,
    OfficePipeline,
    PipelineStage,
    Role,
    default_pipeline,
    office_for,
    pipeline_order,
    role_for_office,
)
from .retry import ReadRetryPolicy
from .service import AttachmentFailure, RoutingService, SubmissionResult
from .settings import RoutingSettings
from .store import (
    ChangeKind,
    ChangeNotification,
    InMemoryChangeFeed,
    InMemoryObjectStore,
    InMemoryStore,
)
from .verdicts import VerdictOutcome, apply_verdict, authorize, can_act, compute_transition

__all__ = [
    "ActingContext",
    "Actor",
    "ApprovalEntry",
    "Attachment",
    "AttachmentFailure",
    "AttachmentUpload",
    "AuditLog",
    "AuditTrackingRow",
    "AuthorizationError",
    "ChangeKind",
    "ChangeNotification",
    "ConflictError",
    "DashboardProjector",
    "DashboardSnapshot",
    "InMemoryChangeFeed",
    "InMemoryObjectStore",
    "InMemoryStore",
    "Office",
    "OfficePipeline",
    "PipelineStage",
    "ReadRetryPolicy",
    "RequestFields",
    "RequestNotFoundError",
    "Role",
    "RoutingError",
    "RoutingService",
    "RoutingSettings",
    "StatusCounters",
    "StorageError",
    "SubmissionResult",
    "TERMINAL_STATUSES",
    "TravelRequest",
    "TravelType",
    "ValidationError",
    "Verdict",
    "VerdictOutcome",
    "action_required",
    "apply_transition",
    "apply_verdict",
    "audit_tracking",
    "authorize",
    "can_act",
    "compute_transition",
    "create_request",
    "default_pipeline",
    "my_files",
    "my_requests",
    "office_for",
    "pipeline_order",
    "role_for_office",
    "status_counters",
    "__version__",
]
__version__ = "0.1.0"
