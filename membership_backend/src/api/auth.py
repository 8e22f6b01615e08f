"""
Authentication endpoints and RBAC logic for the Welin membership platform.

- Register (admin / vendor / user identities)
- Login for back-office users and for members (JWT issuance, 1 hour expiry)
- JWT auth dependencies for users and members
- Role gate driven by an explicit role hierarchy table

All endpoints documented for OpenAPI/Swagger.
"""

from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordBearer
from pydantic import ValidationError
from typing import Optional
from sqlalchemy.orm import Session
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from loguru import logger

from src.api import config
from src.api.errors import (
    DeactivatedError,
    DuplicateKeyError,
    ForbiddenError,
    InvalidCredentialsError,
    InvalidTokenError,
    TokenExpiredError,
    UnauthenticatedError,
)
from src.api.models import User, Member, RoleEnum, utcnow
from src.api.openapi_schemas import (
    Token, TokenPayload, LoginRequest, LoginResult, APIResponse, ErrorResponse
)
from src.api.schemas import RegisterRequest, UserOut
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

MEMBER_ROLE = "member"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

# ---- DB Session Setup (env DATABASE_URL or fallback to a local sqlite file) ----
engine = create_engine(
    config.DATABASE_URL,
    connect_args={"check_same_thread": False} if config.DATABASE_URL.startswith("sqlite") else {},
)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

def get_db():
    """Yields a SQLAlchemy session for dependency-injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# =============================
# Role hierarchy
# =============================

# Roles each identity role may act as.
ROLE_HIERARCHY = {
    RoleEnum.superadmin.value: [RoleEnum.superadmin.value, RoleEnum.admin.value, RoleEnum.vendor.value],
    RoleEnum.admin.value: [RoleEnum.admin.value, RoleEnum.vendor.value],
    RoleEnum.vendor.value: [RoleEnum.vendor.value],
    RoleEnum.agent.value: [RoleEnum.agent.value],
}

# PUBLIC_INTERFACE
def role_allows(role: str, required_role: str) -> bool:
    """True when an identity holding `role` may access a route requiring `required_role`."""
    return required_role in ROLE_HIERARCHY.get(role, [])

# =============================
# Utility Functions
# =============================

def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify that a plaintext password matches its hash."""
    return pwd_context.verify(plain_password, hashed_password)

# PUBLIC_INTERFACE
def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed JWT carrying `data`; expires after one hour unless told otherwise."""
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = timedelta(minutes=config.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": int(expire.timestamp())})
    return jwt.encode(to_encode, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)

# PUBLIC_INTERFACE
def decode_access_token(token: str) -> TokenPayload:
    """Verify a token and return its claims, raising TokenExpiredError or InvalidTokenError."""
    try:
        payload = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
        return TokenPayload(**payload)
    except ExpiredSignatureError:
        raise TokenExpiredError()
    except (JWTError, ValidationError):
        raise InvalidTokenError()

def issue_user_token(user: User) -> Token:
    claims = {"sub": str(user.id), "id": user.id, "role": user.role, "email": user.email}
    return Token(access_token=create_access_token(claims), token_type="bearer")

def issue_member_token(member: Member) -> Token:
    claims = {
        "sub": str(member.id),
        "id": member.id,
        "role": MEMBER_ROLE,
        "email": member.email,
        "welin_id": member.welin_id,
    }
    return Token(access_token=create_access_token(claims), token_type="bearer")

# PUBLIC_INTERFACE
def ensure_identity_available(
    db: Session,
    email: Optional[str] = None,
    mobile: Optional[str] = None,
    exclude_user_id: Optional[int] = None,
    exclude_member_id: Optional[int] = None,
):
    """
    Enforce global uniqueness of email and mobile across users and members.
    Raises DuplicateKeyError naming the clashing field.
    """
    if email:
        email = email.lower()
        users = db.query(User).filter(User.email == email)
        members = db.query(Member).filter(Member.email == email)
        if exclude_user_id is not None:
            users = users.filter(User.id != exclude_user_id)
        if exclude_member_id is not None:
            members = members.filter(Member.id != exclude_member_id)
        if users.first() or members.first():
            raise DuplicateKeyError("User with this email already exists")
    if mobile:
        users = db.query(User).filter(User.mobile == mobile)
        members = db.query(Member).filter(Member.contact_no == mobile)
        if exclude_user_id is not None:
            users = users.filter(User.id != exclude_user_id)
        if exclude_member_id is not None:
            members = members.filter(Member.id != exclude_member_id)
        if users.first() or members.first():
            raise DuplicateKeyError("User with this mobile number already exists")

# =============================
# Authentication Logic
# =============================

# PUBLIC_INTERFACE
def authenticate_user(db: Session, email: str, password: str) -> User:
    """Check user's credentials. Never reveals which of email or password was wrong."""
    user = db.query(User).filter(User.email == email.lower()).first()
    if not user or not verify_password(password, user.hashed_password):
        raise InvalidCredentialsError()
    if not user.is_active:
        raise DeactivatedError()
    return user

def authenticate_member(db: Session, email: str, password: str) -> Member:
    member = db.query(Member).filter(Member.email == email.lower()).first()
    if not member or not verify_password(password, member.hashed_password):
        raise InvalidCredentialsError()
    if not member.is_active:
        raise DeactivatedError("Member account is deactivated")
    return member

def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.get(User, user_id)

# =============================
# JWT Auth Dependencies
# =============================

# PUBLIC_INTERFACE
def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    """Resolve the bearer token to an active back-office user."""
    if token is None:
        raise UnauthenticatedError()
    claims = decode_access_token(token)
    if claims.role == MEMBER_ROLE:
        raise ForbiddenError("Member tokens cannot access this resource")
    user = get_user(db, claims.id)
    if user is None:
        raise UnauthenticatedError("User not found")
    if not user.is_active:
        raise DeactivatedError()
    return user

# PUBLIC_INTERFACE
def role_required(required_role: str):
    """
    Returns a dependency that only admits users whose role reaches `required_role`
    through ROLE_HIERARCHY. Refreshes last_login on every admitted call.
    Example: Depends(role_required("admin"))
    """
    def dependency(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> User:
        if not role_allows(current_user.role, required_role):
            raise ForbiddenError()
        current_user.last_login = utcnow()
        db.commit()
        db.refresh(current_user)
        return current_user
    return dependency

# PUBLIC_INTERFACE
def get_current_member(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Member:
    """Resolve a member token to an active member."""
    if token is None:
        raise UnauthenticatedError()
    claims = decode_access_token(token)
    if claims.role != MEMBER_ROLE:
        raise ForbiddenError("Only members can access this resource")
    member = db.get(Member, claims.id)
    if member is None:
        raise UnauthenticatedError("Member not found")
    if not member.is_active:
        raise DeactivatedError("Member account is deactivated")
    return member

# =============================
# ENDPOINTS: Authentication
# =============================

@router.post("/register", response_model=APIResponse, status_code=status.HTTP_201_CREATED, responses={400: {"model": ErrorResponse}}, summary="Register user", description="Register an admin, vendor or plain user identity.")
def register(user_in: RegisterRequest, db: Session = Depends(get_db)):
    """
    Registers a new identity. Email and mobile must be unused by any user or member.
    """
    ensure_identity_available(db, email=user_in.email, mobile=user_in.mobile)
    user = User(
        name=user_in.name,
        email=user_in.email.lower(),
        mobile=user_in.mobile,
        hashed_password=hash_password(user_in.password),
        role=user_in.role.value,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered {} {}", user.role, user.email)
    return APIResponse(
        success=True,
        message=f"{user.role} registered successfully",
        data=UserOut.model_validate(user),
    )


@router.post("/login", response_model=APIResponse, responses={400: {"model": ErrorResponse}}, summary="User login", description="Authenticate a back-office user and return a JWT access token")
def login(credentials: LoginRequest, db: Session = Depends(get_db)):
    """
    Returns a bearer token embedding {id, role, email} and refreshes last_login.
    """
    user = authenticate_user(db, credentials.email, credentials.password)
    user.last_login = utcnow()
    db.commit()
    db.refresh(user)
    return APIResponse(
        success=True,
        message="Logged in successfully",
        data=LoginResult(token=issue_user_token(user), user=UserOut.model_validate(user)),
    )


@router.post("/member/login", response_model=APIResponse, responses={400: {"model": ErrorResponse}}, summary="Member login", description="Authenticate a member and return a JWT access token")
def member_login(credentials: LoginRequest, db: Session = Depends(get_db)):
    # Local import: membership imports this module for its dependencies.
    from src.api.membership import member_to_out

    member = authenticate_member(db, credentials.email, credentials.password)
    member.last_login = utcnow()
    db.commit()
    db.refresh(member)
    return APIResponse(
        success=True,
        message="Logged in successfully",
        data=LoginResult(token=issue_member_token(member), user=member_to_out(member)),
    )


@router.get("/me", response_model=UserOut, summary="Get current user info", description="Returns info for the currently authenticated user")
def me(current_user: User = Depends(get_current_user)):
    return UserOut.model_validate(current_user)
