from .auth import UserCreate, StaffCreate, UserLogin, UserResponse, Token
from .book import (
    BookBase, BookCreate, BookResponse,
    EditionCreate, EditionResponse,
    BookCopyCreate, BookCopyResponse,
)
from .library_card import LibraryCardCreate, LibraryCardRenew, LibraryCardResponse
from .borrow import (
    BorrowRequestCreate, ApproveRequest, IssueRequest, RejectRequest, ExtendRequest,
    ReturnItemIn, ReturnRequest,
    BorrowDetailResponse, FineResponse, BorrowRequestResponse,
    ReturnItemResultResponse, ReturnResultResponse, FinePreviewItem,
)
from .finance import FineSummary, FineListResponse, DepositCreate, DepositResponse, MyDepositsResponse

__all__ = [
    "UserCreate", "StaffCreate", "UserLogin", "UserResponse", "Token",
    "BookBase", "BookCreate", "BookResponse",
    "EditionCreate", "EditionResponse",
    "BookCopyCreate", "BookCopyResponse",
    "LibraryCardCreate", "LibraryCardRenew", "LibraryCardResponse",
    "BorrowRequestCreate", "ApproveRequest", "IssueRequest", "RejectRequest", "ExtendRequest",
    "ReturnItemIn", "ReturnRequest",
    "BorrowDetailResponse", "FineResponse", "BorrowRequestResponse",
    "ReturnItemResultResponse", "ReturnResultResponse", "FinePreviewItem",
    "FineSummary", "FineListResponse", "DepositCreate", "DepositResponse", "MyDepositsResponse",
]
