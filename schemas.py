from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, confloat, conint


class LocalizedDiagnosis(BaseModel):
    model_config = ConfigDict(frozen=True)

    diagnosis: str
    confidence: Union[conint(ge=0, le=100), confloat(ge=0, le=100)] = 0
    recommendations: List[str] = Field(default_factory=list)


class AnalysisResult(BaseModel):
    """Diagnosis in both configured languages. Both halves are always present."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    primary_language: LocalizedDiagnosis = Field(alias="primaryLanguage")
    secondary_language: LocalizedDiagnosis = Field(alias="secondaryLanguage")


class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str = ""
    analysis: Optional[AnalysisResult] = None


class ChatRequest(BaseModel):
    messages: List[ConversationTurn]
    analysis: Optional[AnalysisResult] = None


class ChatResponse(BaseModel):
    response: str


class AnalysisRecordIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    diagnosis: str = ""
    recommendations: List[str] = Field(default_factory=list)


class SaveResponse(BaseModel):
    success: bool
