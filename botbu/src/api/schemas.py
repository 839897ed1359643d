"""
Bot Bu - API Schemas
=====================
Request / response bodies for the chat, health and usage endpoints.
Field names are camelCase on the wire to match the chat UI.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from botbu.src.core.conversation import ChatTurn


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat-rag`` and ``POST /api/chat``."""

    model_config = ConfigDict(populate_by_name=True)

    message: StrictStr
    conversation_history: list[ChatTurn] = Field(default_factory=list, alias="conversationHistory")


class UsageWarnings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    daily_warning: bool = Field(alias="dailyWarning")
    daily_critical: bool = Field(alias="dailyCritical")
    minute_warning: bool = Field(alias="minuteWarning")
    minute_critical: bool = Field(alias="minuteCritical")

    @property
    def status(self) -> str:
        if self.daily_critical or self.minute_critical:
            return "critical"
        if self.daily_warning or self.minute_warning:
            return "warning"
        return "healthy"


class GlobalUsage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    requests_today: int = Field(alias="requestsToday")
    daily_limit: int = Field(alias="dailyLimit")
    daily_remaining: int = Field(alias="dailyRemaining")
    daily_percentage: float = Field(alias="dailyPercentage")
    requests_this_minute: int = Field(alias="requestsThisMinute")
    minute_limit: int = Field(alias="minuteLimit")
    minute_remaining: int = Field(alias="minuteRemaining")
    minute_percentage: float = Field(alias="minutePercentage")
    warnings: UsageWarnings
    status: str
    total_requests: int = Field(alias="totalRequests")
    first_request_date: str = Field(alias="firstRequestDate")


class UsageResponse(BaseModel):
    success: bool = True
    global_usage: GlobalUsage = Field(alias="globalUsage")
    message: str
    timestamp: str

    model_config = ConfigDict(populate_by_name=True)
