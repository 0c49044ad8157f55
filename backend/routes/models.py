"""Pydantic request models for API endpoints."""

from pydantic import BaseModel, Field


class CreateStory(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    genre: str = Field(min_length=1)
    theme: str = ""
    initial_location: str = Field(min_length=1)
    player_name: str | None = None


class ContinueBody(BaseModel):
    player_input: str


class LLMSettings(BaseModel):
    provider_url: str | None = None
    provider_format: str | None = None
    model: str | None = None
    api_key: str | None = None
    timeout: float | None = None


class UpdateSettings(BaseModel):
    llm: LLMSettings | None = None
    generation_timeout: float | None = Field(default=None, gt=0)
    max_attempts: int | None = Field(default=None, ge=1)
