from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

Modality = Literal["text", "image"]


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class AdminCredentials(StrictModel):
    email: str = ""
    password: str = Field(default="", repr=False)


class AIModelConfig(StrictModel):
    # "model_id" clashes with pydantic's reserved "model_" prefix otherwise.
    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    id: UUID
    modality: Modality
    provider: str
    model_id: str
    system_prompt: str | None = None
    created_at: datetime | None = None


class StepError(StrictModel):
    step: str
    message: str


class BootstrapStatusResponse(StrictModel):
    ok: bool
    steps_completed: list[str]
    errors: list[StepError]
    table_count: int | None = None
    seeded_ai_configs: bool
    insecure_defaults_used: bool
