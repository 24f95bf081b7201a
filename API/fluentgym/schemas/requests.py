from pydantic import BaseModel, Field

from fluentgym.schemas.session import LanguageSettings, Personality, Scenario, TerminationReason


class StartSessionRequest(BaseModel):
    scenario_id: str | None = Field(None, description="Built-in scenario id")
    personality_id: str | None = Field(None, description="Built-in personality id")
    scenario: Scenario | None = Field(None, description="Inline scenario; wins over scenario_id")
    personality: Personality | None = Field(None, description="Inline personality; wins over personality_id")
    language: LanguageSettings = Field(default_factory=LanguageSettings)


class SendTurnRequest(BaseModel):
    content: str
    elapsed_latency_ms: float | None = Field(None, ge=0, description="Measured from the gate when omitted")
    hesitation_count: int = Field(0, ge=0)


class EndSessionRequest(BaseModel):
    reason: TerminationReason = TerminationReason.USER_ENDED
