"""
Pydantic schemas for API request/response validation
"""
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

from travelvoice.core.prompts import strip_hidden_suffix


class CamelModel(BaseModel):
    """Accepts both the camelCase alias and the field name."""
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())


# Auth Schemas
class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserRegister(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    first_name: str
    last_name: str
    organisation_name: str


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    organization_id: str
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrganizationResponse(BaseModel):
    id: str
    name: str
    subscription_plan: str
    subscription_status: Optional[str] = None
    time_remaining_seconds: int
    stripe_customer_id: Optional[str] = None

    class Config:
        from_attributes = True


class MeResponse(BaseModel):
    user: UserResponse
    organization: OrganizationResponse


# Agent Schemas
class DataExtractionField(BaseModel):
    name: str
    type: str = "string"
    description: Optional[str] = None


class DataExtractionConfig(BaseModel):
    enabled: bool = True
    name: Optional[str] = None
    fields: List[DataExtractionField] = []


class AdvancedConfig(CamelModel):
    first_message_mode: Optional[str] = Field(None, alias="firstMessageMode")
    max_duration_seconds: Optional[int] = Field(None, alias="maxDurationSeconds")
    background_sound: Optional[str] = Field(None, alias="backgroundSound")
    background_denoising_enabled: Optional[bool] = Field(None, alias="backgroundDenoisingEnabled")
    voicemail_detection: Optional[Dict[str, Any]] = Field(None, alias="voicemailDetection")
    transcription_language: Optional[str] = Field(None, alias="transcriptionLanguage")
    model: Optional[str] = None
    model_provider: Optional[str] = Field(None, alias="modelProvider")
    temperature: Optional[float] = Field(None, ge=0, le=2)
    max_tokens: Optional[int] = Field(None, alias="maxTokens", gt=0)
    notification_emails: Optional[List[EmailStr]] = Field(None, alias="notificationEmails")


class AgentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    image: Optional[str] = None
    voice_id: Optional[str] = None
    first_message: Optional[str] = None
    system_prompt: Optional[str] = None

    @field_validator("system_prompt")
    @classmethod
    def drop_hidden_suffix(cls, value: Optional[str]) -> Optional[str]:
        """The operational suffix is added on the way out, never stored."""
        return strip_hidden_suffix(value) if value is not None else None


class AgentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    image: Optional[str] = None
    voice_id: Optional[str] = None
    first_message: Optional[str] = None
    system_prompt: Optional[str] = None
    custom_webhook_url: Optional[str] = None
    advanced_config: Optional[AdvancedConfig] = None
    data_extraction_config: Optional[DataExtractionConfig] = None

    @field_validator("system_prompt")
    @classmethod
    def drop_hidden_suffix(cls, value: Optional[str]) -> Optional[str]:
        return strip_hidden_suffix(value) if value is not None else None


class AgentResponse(BaseModel):
    id: str
    organization_id: str
    name: str
    image: Optional[str] = None
    voice_id: Optional[str] = None
    first_message: Optional[str] = None
    system_prompt: Optional[str] = None
    vapi_assistant_id: Optional[str] = None
    structured_output_id: Optional[str] = None
    custom_webhook_url: Optional[str] = None
    advanced_config: Optional[Dict[str, Any]] = None
    data_extraction_config: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AgentFileResponse(BaseModel):
    id: str
    agent_id: str
    file_name: str
    file_type: Optional[str] = None
    file_size: int
    vapi_file_id: Optional[str] = None
    created_at: Optional[datetime] = None
    url: Optional[str] = None

    class Config:
        from_attributes = True


class TestWebhookRequest(CamelModel):
    webhook_url: str = Field(..., alias="webhookUrl")


class GeneratePromptRequest(CamelModel):
    agent_role: str = Field(..., alias="agentRole", min_length=1)
    primary_goal: str = Field(..., alias="primaryGoal", min_length=1)
    company_name: Optional[str] = Field(None, alias="companyName")
    key_info: Optional[str] = Field(None, alias="keyInfo")


# Phone Number Schemas
class PhoneNumberBuy(CamelModel):
    phone_number: str = Field(..., alias="phoneNumber", min_length=1)
    assistant_id: Optional[str] = Field(None, alias="assistantId")


class PhoneNumberAssign(CamelModel):
    assistant_id: Optional[str] = Field(None, alias="assistantId")


class PhoneNumberResponse(BaseModel):
    id: str
    phone_number: str
    agent_id: Optional[str] = None
    assistant_name: Optional[str] = None
    status: str
    is_paid: bool
    created_at: Optional[datetime] = None


# API Key Schemas
class ApiKeyCreate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    scopes: List[str] = ["*"]
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")


class ApiKeyUpdate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    scopes: Optional[List[str]] = None
    is_active: Optional[bool] = Field(None, alias="isActive")


class ApiKeyResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    key_prefix: str
    key_hint: str
    masked_key: str
    scopes: List[str]
    is_active: bool
    expires_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    last_used_ip: Optional[str] = None
    usage_count: int = 0
    created_at: Optional[datetime] = None


# Team Schemas
class InviteRequest(BaseModel):
    email: EmailStr
    role: str = "customer"

    @field_validator("email", mode="before")
    @classmethod
    def email_required(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError("Email is required")
        return value.strip() if isinstance(value, str) else value


class AcceptInviteRequest(BaseModel):
    token: str
    password: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class RoleUpdate(BaseModel):
    role: str


# Billing Schemas
class CheckoutRequest(CamelModel):
    plan_id: str = Field(..., alias="planId")
    price_id: Optional[str] = Field(None, alias="priceId")


# Call Schemas
class OutboundCustomer(BaseModel):
    number: Optional[str] = None
    name: Optional[str] = None


class OutboundCallRequest(CamelModel):
    assistant_id: Optional[str] = Field(None, alias="assistantId")
    phone_number_id: Optional[str] = Field(None, alias="phoneNumberId")
    customer: Optional[OutboundCustomer] = None
    variables: Optional[Dict[str, Any]] = None
