"""
API Schemas package.
"""
from .common import CamelModel, MessageResponse
from .configs import (
    CompletionResponse,
    ConfigurationCreate,
    ConfigurationDetail,
    ConfigurationList,
    ConfigurationResponse,
    ConfigurationSummary,
    ConfigurationUpdate,
    InstanceCompletions,
    InstanceConfigurationRef,
    InstanceDeleted,
    InstanceDetailResponse,
    InstanceResponse,
    InstanceSummary,
    InstanceUpload,
    InstanceUploadResponse,
    VariableDefinition,
)
from .exports import (
    ExportCompletion,
    ExportConfiguration,
    ExportDocument,
    ExportFinalWinner,
    ExportInstance,
    ExportMatch,
    ExportOption,
    ExportRating,
    ExportVariable,
    ExportWinner,
)
from .ratings import (
    MatchAssignmentResponse,
    RaterConfiguration,
    RaterInstance,
    RaterMatch,
    RaterOption,
    RatingMatchResponse,
    RatingResponseOut,
    RatingsResponse,
    RatingsSummary,
    RatingSubmit,
    RatingSubmitted,
)
from .recovery import ForceCompleteResponse, ResetRequest, ResetResponse
from .runs import (
    ExecuteResponse,
    QueuedRun,
    QueueSnapshot,
    QueueSummary,
    RecentCompletion,
    RunAction,
    RunActionRequest,
    RunConfigurationInfo,
    RunDeleteResponse,
    RunDetailResponse,
    RunHistory,
    RunResponse,
)
from .worker import (
    ClaimedInstanceOut,
    ClaimResponse,
    CompletionCreate,
    CompletionRecorded,
    ReleaseRequest,
    ReleaseResponse,
    WorkerEndpointResponse,
    WorkerEndpointUpdate,
)
