"""
Operator Model

Clinic staff member signed in through Supabase Auth
"""
from typing import Optional
from pydantic import BaseModel, Field


class Operator(BaseModel):
    """Operator identity taken from the claims of a verified access token"""
    operator_id: str = Field(..., description="Supabase user UUID (sub claim)")
    email: str = Field("", description="Login email")
    display_name: str = Field("", description="Name shown to other operators")
    role: Optional[str] = Field(None, description="Supabase role claim")
    expires_at: Optional[int] = Field(None, description="Token expiry (unix seconds)")

    class Config:
        json_schema_extra = {
            "example": {
                "operator_id": "a1b2c3d4-e5f6-7890-abcd-ef1234567890",
                "email": "recepcao@clinica.com.br",
                "display_name": "Recepção",
                "role": "authenticated",
                "expires_at": 1735689600
            }
        }

    @property
    def label(self) -> str:
        """Best human-readable name for logs"""
        return self.display_name or self.email or self.operator_id
