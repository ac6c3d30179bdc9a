from schemas.application import (
    ApplicantProfile,
    ApplicationCreate,
    ApplicationUpdate,
    TransitionRequest,
)
from schemas.banking import (
    BankingAnalysis,
    DocumentMeta,
    MonthlyStats,
    RiskFactor,
    StatementPeriod,
    Transaction,
)
from schemas.lender import (
    CriterionResultSchema,
    LenderCreate,
    LenderProductSchema,
    LenderUpdate,
    MatchResultSchema,
    ProductBase,
    ProductCreate,
    ProductUpdate,
)
from schemas.signing import SignerInfo, SigningCallback, SigningJobSchema, SigningRequest

__all__ = [
    "ApplicantProfile",
    "ApplicationCreate",
    "ApplicationUpdate",
    "TransitionRequest",
    "BankingAnalysis",
    "DocumentMeta",
    "MonthlyStats",
    "RiskFactor",
    "StatementPeriod",
    "Transaction",
    "CriterionResultSchema",
    "LenderCreate",
    "LenderProductSchema",
    "LenderUpdate",
    "MatchResultSchema",
    "ProductBase",
    "ProductCreate",
    "ProductUpdate",
    "SignerInfo",
    "SigningCallback",
    "SigningJobSchema",
    "SigningRequest",
]
