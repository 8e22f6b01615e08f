"""
OpenAPI-compatible Pydantic schemas shared by every router: token contracts,
login requests, the standard response envelope and the tag catalogue.
"""

from typing import Any, Optional
from pydantic import BaseModel, Field, EmailStr

# ----------------------------------------
# PUBLIC_INTERFACE
class Token(BaseModel):
    """
    Access token response schema.
    """
    access_token: str = Field(..., description="JWT Access token")
    token_type: str = Field("bearer", description="The token type, always 'bearer'.")

# ----------------------------------------
# PUBLIC_INTERFACE
class TokenPayload(BaseModel):
    """
    JWT token payload/basic claims schema.
    """
    id: int = Field(..., description="Identity identifier (user or member id).")
    role: str = Field(..., description="Role of the identity.")
    email: Optional[str] = Field(None, description="Email the identity logged in with.")
    exp: int = Field(..., description="Expiration timestamp (unix epoch).")
    welin_id: Optional[str] = Field(None, description="Welin ID, member tokens only.")

# ----------------------------------------
# PUBLIC_INTERFACE
class LoginRequest(BaseModel):
    """
    Login request schema.
    """
    email: EmailStr = Field(..., description="Login email")
    password: str = Field(..., description="Password")

# ----------------------------------------
# PUBLIC_INTERFACE
class LoginResult(BaseModel):
    """
    Token plus a public view of the identity that logged in.
    """
    token: Token
    user: Any

# ==== Misc / Common ====

# ----------------------------------------
# PUBLIC_INTERFACE
class APIResponse(BaseModel):
    """
    Standard API response wrapper.
    """
    success: bool = Field(..., description="Request was successful")
    message: Optional[str] = Field(None, description="A human-readable message")
    data: Optional[Any] = Field(None, description="Payload")

# ----------------------------------------
# PUBLIC_INTERFACE
class ErrorResponse(BaseModel):
    """
    Error response wrapper.
    """
    status: str = Field(..., description="'fail' for client errors, 'error' for server errors")
    message: str = Field(..., description="Error details")

# ---- Endpoint Contracts: Tag Mapping (for OpenAPI tags) ----
openapi_tags = [
    {"name": "Authentication", "description": "Registration, login and token management."},
    {"name": "Admin", "description": "User provisioning, activation and platform counts."},
    {"name": "Agents", "description": "Vendor-scoped agent management."},
    {"name": "Members", "description": "Member onboarding, Welin IDs and member products."},
    {"name": "Loan Covers", "description": "Loan-cover insurance products."},
    {"name": "Payments", "description": "QR, payment-link and gateway payments."},
    {"name": "Premiums", "description": "Premium table import and lookup."},
    {"name": "Misc", "description": "Health checks."},
]
