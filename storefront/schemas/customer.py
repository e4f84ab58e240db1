from typing import Optional

from pydantic import BaseModel, ConfigDict


class CustomerDetails(BaseModel):
    """Submitted checkout identity, already validated."""
    name: str
    phone: str
    email: Optional[str] = None
    address: str


class CustomerResponse(BaseModel):
    """Saved details used to pre-fill the checkout form."""
    id: str
    name: str
    phone: str
    email: Optional[str] = None
    address: str

    model_config = ConfigDict(from_attributes=True)
