from __future__ import annotations

from pydantic import BaseModel, Field


class ApiKeyIn(BaseModel):
    api_key: str = Field(min_length=1, max_length=200)


class CredentialStatusOut(BaseModel):
    configured: bool


class ResetOut(BaseModel):
    deleted_expenses: int
