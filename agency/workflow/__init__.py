from .errors import (
    AuthorizationRejected,
    CommitFailed,
    GuardRejected,
    InvalidInput,
    PendingTransitionNotFound,
    StoreError,
    TicketNotFound,
    TransitionRejected,
    WorkflowError,
)
from .orchestrator import AwaitingInput, Committed, Unchanged, WorkflowOrchestrator
from .permissions import board_column, can_initiate_transition, visible_columns
from .tickets import TicketService
