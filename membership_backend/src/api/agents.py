"""
Agent endpoints (role: vendor). Agents are users that onboard members on behalf of
the vendor that created them.
"""

from fastapi import APIRouter, Depends, status
from loguru import logger
from sqlalchemy.orm import Session

from src.api.auth import get_db, role_required, hash_password, ensure_identity_available
from src.api.models import RoleEnum, User
from src.api.openapi_schemas import APIResponse, ErrorResponse
from src.api.schemas import AgentCreate, UserOut

router = APIRouter(prefix="/api/agent", tags=["Agents"])

DEFAULT_AGENT_PASSWORD = "password"


# PUBLIC_INTERFACE
@router.post("", response_model=APIResponse, status_code=status.HTTP_201_CREATED, responses={400: {"model": ErrorResponse}}, summary="Create agent")
def create_agent(
    agent_in: AgentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("vendor")),
):
    """Create an agent under the calling vendor. Password defaults to 'password'."""
    ensure_identity_available(db, email=agent_in.email, mobile=agent_in.mobile)
    agent = User(
        name=agent_in.name,
        email=agent_in.email.lower(),
        mobile=agent_in.mobile,
        hashed_password=hash_password(agent_in.password or DEFAULT_AGENT_PASSWORD),
        role=RoleEnum.agent.value,
        vendor_id=current_user.id,
        is_active=True,
    )
    db.add(agent)
    db.commit()
    db.refresh(agent)
    logger.info("Vendor {} created agent {}", current_user.id, agent.email)
    return APIResponse(success=True, message="Agent created successfully", data=UserOut.model_validate(agent))


# PUBLIC_INTERFACE
@router.get("", response_model=APIResponse, summary="List own agents")
def list_agents(db: Session = Depends(get_db), current_user: User = Depends(role_required("vendor"))):
    agents = (
        db.query(User)
        .filter(User.role == RoleEnum.agent.value, User.vendor_id == current_user.id)
        .order_by(User.id)
        .all()
    )
    return APIResponse(success=True, data=[UserOut.model_validate(a) for a in agents])
