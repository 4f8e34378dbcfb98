"""
Structured Model Output Schemas

Shapes requested from the structuring model. Aliases are the wire (JSON)
names; ``model_json_schema()`` is what the model is shown.
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class StructuredAnswer(BaseModel):
    """Final answer to a question over the article corpus"""
    model_config = ConfigDict(populate_by_name=True, title="StructuredAnswer")

    thinking_process: str = Field(
        ..., alias="thinkingProcess",
        description="Brief explanation of how the answer was derived from the articles",
    )
    answer_body: str = Field(
        ..., alias="answerBody",
        description="The answer, citing articles as [ID: x]",
    )
    confidence_score: int = Field(
        ..., alias="confidenceScore", ge=0, le=100,
        description="Confidence in the answer, 0-100; lower it when context is thin",
    )
    cited_record_ids: List[int] = Field(
        ..., alias="citedRecordIds",
        description="Article IDs the answer relies on",
    )
    follow_up_suggestions: List[str] = Field(
        ..., alias="followUpSuggestions", min_length=3, max_length=3,
        description="Exactly three follow-up questions",
    )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class StricterAnalysis(BaseModel):
    """Second-opinion quality judgment for one article"""
    model_config = ConfigDict(populate_by_name=True, title="StricterAnalysis")

    score: int = Field(..., ge=1, le=100, description="Quality ranking 1-100")
    quality_label: str = Field(
        ..., alias="qualityLabel", min_length=1,
        description="Short verdict on whether the article is worth the reader's time",
    )
    confidence: float = Field(..., ge=0.0, le=1.0, description="Confidence 0.0-1.0")
    reasoning: str = Field(..., description="Why this score, naming concrete weaknesses")


EMPTY_ANSWER_FOLLOW_UPS = [
    "What articles do I have in my feed?",
    "Show me recent articles",
    "What topics do my articles cover?",
]


def empty_result_answer() -> StructuredAnswer:
    """Canned answer when no article matched the question."""
    return StructuredAnswer(
        thinking_process="No relevant articles were found in the collection for this question.",
        answer_body=(
            "I couldn't find any articles in your collection that relate to this question. "
            "Try rephrasing it, or save some articles on the topic first."
        ),
        confidence_score=0,
        cited_record_ids=[],
        follow_up_suggestions=list(EMPTY_ANSWER_FOLLOW_UPS),
    )
