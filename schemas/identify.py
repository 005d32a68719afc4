"""
Pydantic schemas for the /identify endpoint
Handles request normalization, the engine's identity view and
response serialization
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator


class IdentifyRequest(BaseModel):
    """
    Request schema for the /identify endpoint
    Normalizes email (trimmed, lowercased) and phone number (coerced to a
    trimmed string); empty values become None. At least one must remain.
    """
    email: Optional[str] = Field(
        None,
        description="Customer email address",
        examples=["customer@example.com", None]
    )
    phoneNumber: Optional[str] = Field(
        None,
        description="Customer phone number, string or number",
        examples=["123456", 123456, None]
    )

    @field_validator('email', mode='before')
    @classmethod
    def normalize_email(cls, v) -> Optional[str]:
        if v is None:
            return None

        if not isinstance(v, str):
            raise ValueError('email must be a string')

        v = v.strip().lower()
        return v or None

    @field_validator('phoneNumber', mode='before')
    @classmethod
    def normalize_phone_number(cls, v) -> Optional[str]:
        """
        Coerce numbers to strings and trim
        """
        if v is None:
            return None

        # bool is an int subclass, never a phone number
        if isinstance(v, bool):
            raise ValueError('phoneNumber must be a string or number')

        if isinstance(v, int):
            v = str(v)
        elif isinstance(v, float):
            # Whole floats are written out digit by digit, never in exponent form
            v = str(int(v)) if v.is_integer() else str(v)

        if not isinstance(v, str):
            raise ValueError('phoneNumber must be a string or number')

        v = v.strip()
        return v or None

    @model_validator(mode='after')
    def validate_at_least_one_field(self):
        if not self.email and not self.phoneNumber:
            raise ValueError('At least one of email or phoneNumber is required')
        return self

    class Config:
        json_schema_extra = {
            "examples": [
                {
                    "email": "lorraine@hillvalley.edu",
                    "phoneNumber": "123456"
                },
                {
                    "email": "mcfly@hillvalley.edu",
                    "phoneNumber": None
                },
                {
                    "email": None,
                    "phoneNumber": 123456
                }
            ]
        }


class IdentityView(BaseModel):
    """
    Consolidated identity returned by the reconciliation engine

    Lists start with the primary's own values, followed by values from
    secondaries in creation order, without duplicates or nulls.
    """
    primary_id: int
    emails: List[str] = Field(default_factory=list)
    phone_numbers: List[str] = Field(default_factory=list)
    secondary_ids: List[int] = Field(default_factory=list)


class ContactResponse(BaseModel):
    """
    Contact information in the API response
    Contains consolidated contact data for a customer
    """
    primaryContatctId: int = Field(
        description="ID of the primary contact"
    )
    emails: List[str] = Field(
        description="All email addresses associated with this contact, primary first",
        examples=[["lorraine@hillvalley.edu", "mcfly@hillvalley.edu"]]
    )
    phoneNumbers: List[str] = Field(
        description="All phone numbers associated with this contact, primary first",
        examples=[["123456"]]
    )
    secondaryContactIds: List[int] = Field(
        description="IDs of all secondary contacts linked to the primary",
        examples=[[23]]
    )


class IdentifyResponse(BaseModel):
    """
    Response schema for the /identify endpoint
    Contains the consolidated contact information
    """
    contact: ContactResponse = Field(
        description="Consolidated contact information"
    )

    @classmethod
    def from_view(cls, view: IdentityView) -> "IdentifyResponse":
        return cls(
            contact=ContactResponse(
                primaryContatctId=view.primary_id,
                emails=view.emails,
                phoneNumbers=view.phone_numbers,
                secondaryContactIds=view.secondary_ids
            )
        )

    class Config:
        json_schema_extra = {
            "example": {
                "contact": {
                    "primaryContatctId": 1,
                    "emails": ["lorraine@hillvalley.edu", "mcfly@hillvalley.edu"],
                    "phoneNumbers": ["123456"],
                    "secondaryContactIds": [23]
                }
            }
        }


class ErrorResponse(BaseModel):
    """
    Error response schema for API errors
    """
    error: str = Field(
        description="Error type or category"
    )
    message: str = Field(
        description="Human-readable error message"
    )
    details: Optional[Dict[str, Any]] = Field(
        None,
        description="Additional error details"
    )

    class Config:
        json_schema_extra = {
            "examples": [
                {
                    "error": "ValidationError",
                    "message": "At least one of email or phoneNumber is required",
                    "details": {"errors": [{"field": "body", "message": "..."}]}
                },
                {
                    "error": "ServiceUnavailable",
                    "message": "Too many concurrent updates, please retry"
                }
            ]
        }
