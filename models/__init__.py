from models.application import LoanApplication
from models.banking import BankingAnalysisRecord
from models.document import Document, OcrResult
from models.lender import Lender, LenderProduct
from models.matching import MatchRun
from models.signing import SigningJob

__all__ = [
    "LoanApplication",
    "BankingAnalysisRecord",
    "Document",
    "OcrResult",
    "Lender",
    "LenderProduct",
    "MatchRun",
    "SigningJob",
]
