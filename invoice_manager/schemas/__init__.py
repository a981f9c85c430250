from invoice_manager.schemas.auth import (
    ConnectionStatus,
    CallbackResponse,
    DisconnectResponse,
    HealthResponse,
)
from invoice_manager.schemas.company import (
    CompanySummary,
    DealResponse,
    InvoiceResponse,
    CompanyDataResponse,
)
from invoice_manager.schemas.actions import (
    MarkBadDebtRequest,
    MarkBadDebtResponse,
    ArchiveSingleInvoiceResponse,
    ArchiveOverdueInvoicesResponse,
    CascadeBadDebtRequest,
    CascadeBadDebtResponse,
)
