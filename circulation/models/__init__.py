from .user import User
from .book import Book, BookEdition, BookCopy
from .library_card import LibraryCard
from .borrow import BorrowRequest, BorrowDetail
from .finance import Fine, DepositTransaction
from .system_setting import SystemSetting

__all__ = [
    "User",
    "Book",
    "BookEdition",
    "BookCopy",
    "LibraryCard",
    "BorrowRequest",
    "BorrowDetail",
    "Fine",
    "DepositTransaction",
    "SystemSetting",
]
