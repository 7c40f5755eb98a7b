import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from circulation.database import get_db
from circulation.models.user import User, ROLE_READER
from circulation.schemas.auth import UserCreate, StaffCreate, UserLogin, UserResponse, Token
from circulation.services.auth import (
    authenticate_user,
    get_password_hash,
    create_access_token,
    get_current_user,
    get_current_admin,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

def _token_for(user: User) -> Token:
    access_token = create_access_token(data={"sub": str(user.user_id)})
    return Token(access_token=access_token, token_type="bearer", user=UserResponse(**user.to_dict()))

def _create_user(db: Session, user_data: UserCreate, role: str) -> User:
    if db.query(User).filter(User.user_email == user_data.user_email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )
    db_user = User(
        user_fname=user_data.user_fname,
        user_lname=user_data.user_lname,
        user_email=user_data.user_email,
        user_password_hash=get_password_hash(user_data.password),
        phone_number=user_data.phone_number,
        user_role=role,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.info(f"Created {role} account {db_user.user_id} ({db_user.user_email})")
    return db_user

@router.post("/signup", response_model=Token, status_code=status.HTTP_201_CREATED)
async def signup(user_data: UserCreate, db: Session = Depends(get_db)):
    """Register a reader account. Readers still need a library card from staff to borrow."""
    return _token_for(_create_user(db, user_data, ROLE_READER))

@router.post("/staff", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_staff(
    user_data: StaffCreate,
    current_user: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Create a librarian or admin account (admin only)."""
    return UserResponse(**_create_user(db, user_data, user_data.user_role).to_dict())

@router.post("/login", response_model=Token)
async def login(user_data: UserLogin, db: Session = Depends(get_db)):
    user = authenticate_user(db, user_data.user_email, user_data.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password"
        )
    return _token_for(user)

@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Current user, including the library card if one was issued."""
    return UserResponse(**current_user.to_dict())
