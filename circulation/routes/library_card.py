from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from circulation.database import get_db
from circulation.models.library_card import LibraryCard
from circulation.models.user import User, ROLE_READER
from circulation.services import cards
from circulation.services.auth import get_current_user, get_current_staff
from circulation.schemas.library_card import LibraryCardCreate, LibraryCardRenew, LibraryCardResponse
from circulation.utils.timezone import today_local

router = APIRouter(prefix="/api/library/cards", tags=["Library Cards"])

@router.post("", response_model=LibraryCardResponse, status_code=status.HTTP_201_CREATED)
async def issue_card(
    card_data: LibraryCardCreate,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    """Issue a library card to a reader (one card per reader)."""
    reader = db.query(User).filter(User.user_id == card_data.user_id).first()
    if not reader or reader.user_role != ROLE_READER:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Reader not found"
        )
    if reader.library_card:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Reader already has a library card"
        )
    if db.query(LibraryCard).filter(LibraryCard.card_number == card_data.card_number).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Card number already exists"
        )
    issue_date = today_local()
    if card_data.expiry_date <= issue_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Expiry date must be after today"
        )
    
    card = LibraryCard(
        card_number=card_data.card_number,
        user_id=reader.user_id,
        issue_date=issue_date,
        expiry_date=card_data.expiry_date,
        deposit_amount=card_data.deposit_amount
    )
    db.add(card)
    db.commit()
    db.refresh(card)
    return LibraryCardResponse.model_validate(card.to_dict())

@router.get("/me", response_model=LibraryCardResponse)
async def get_my_card(current_user: User = Depends(get_current_user)):
    """Get the current reader's library card."""
    if not current_user.library_card:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="You do not have a library card"
        )
    return LibraryCardResponse.model_validate(current_user.library_card.to_dict())

@router.get("/{library_card_id}", response_model=LibraryCardResponse)
async def get_card(
    library_card_id: int,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    return LibraryCardResponse.model_validate(cards.get_card(db, library_card_id).to_dict())

@router.put("/{library_card_id}/renew", response_model=LibraryCardResponse)
async def renew_card(
    library_card_id: int,
    renew_data: LibraryCardRenew,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    """Extend the card's expiry date and reactivate it."""
    card = cards.renew_card(db, library_card_id, current_user, renew_data.new_expiry_date)
    return LibraryCardResponse.model_validate(card.to_dict())

@router.put("/{library_card_id}/lock", response_model=LibraryCardResponse)
async def lock_card(
    library_card_id: int,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    return LibraryCardResponse.model_validate(cards.lock_card(db, library_card_id, current_user).to_dict())

@router.put("/{library_card_id}/unlock", response_model=LibraryCardResponse)
async def unlock_card(
    library_card_id: int,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    return LibraryCardResponse.model_validate(cards.unlock_card(db, library_card_id, current_user).to_dict())
