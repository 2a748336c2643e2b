"""Structured-output contracts for every (category, phase) pair."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .models import Category, Phase

ImageClass = Literal["decorative", "simple_informative", "complex_informative"]
Rating = Literal["excellent", "good", "fair", "poor"]


class StrictResult(BaseModel):
    """Base for model responses: exact primitive types, unknown keys dropped."""

    model_config = ConfigDict(
        strict=True,
        extra="ignore",
        json_schema_extra={"additionalProperties": False},
    )


class AltTextResponse(StrictResult):
    classification: ImageClass
    alt_text: str = Field(
        description="The alt text for the image. Empty string for decorative images."
    )
    reasoning: str = Field(
        description="Brief explanation of why this classification and alt text was chosen."
    )

    @model_validator(mode="after")
    def _decorative_has_no_text(self) -> "AltTextResponse":
        if self.classification == "decorative":
            self.alt_text = ""
        else:
            self.alt_text = self.alt_text.strip()
        return self


class AltTextAnalysis(StrictResult):
    page_context: str = Field(description="The context of the page")
    surrounding_context: str = Field(description="The context surrounding the image")
    classification: ImageClass
    alt_text_analysis: List[str] = Field(
        description="Analyze the alt text based on the context and the classification of the image."
    )
    is_sufficient: bool = Field(description="Whether the alt text is sufficient for accessibility")


class FormFieldHelp(StrictResult):
    field_purpose: str = Field(
        description="Based on the context analysis, what is the purpose of this field?"
    )
    input_type: str = Field(
        description=(
            "What is the type of this field? (e.g., select, text input, date, number, "
            "name, email, password, etc.) If input type is select, then list all the "
            "options in the list."
        )
    )
    label: str = Field(description="Clear, concise label for the field")
    aria_label: str = Field(description="ARIA label for screen readers (can be same as label)")


class FormAccessibilityAnalysis(StrictResult):
    accessibility_score: float = Field(
        ge=1, le=10, description="Integer score from 1-10 for overall accessibility"
    )
    label_quality: Literal["excellent", "good", "fair", "poor", "missing"]
    placeholder_appropriateness: Literal["excellent", "good", "fair", "poor", "not_applicable"]
    issues_found: List[str] = Field(description="List of accessibility issues identified")
    suggestions: List[str] = Field(description="Specific suggestions for improvement")
    is_accessible: bool = Field(
        description="Whether the field meets basic accessibility standards"
    )
    reasoning: str = Field(description="Explanation of the accessibility assessment")


class LinkTextEnhancement(StrictResult):
    current_text_analysis: str = Field(
        description="Analysis of why the current link text is problematic"
    )
    link_purpose: str = Field(description="What does this link do or where does it go?")
    suggested_text: str = Field(description="Improved, descriptive link text")
    aria_label: str = Field(
        description="ARIA label for screen readers (can be same as suggested text)"
    )
    improvement_reasoning: str = Field(
        description="Why this new text is better for accessibility"
    )


class LinkAccessibilityAnalysis(StrictResult):
    accessibility_score: float = Field(
        ge=1, le=10, description="Integer score from 1-10 for overall accessibility"
    )
    text_clarity: Rating
    purpose_clarity: Rating
    issues_found: List[str] = Field(description="List of accessibility issues identified")
    suggestions: List[str] = Field(description="Specific suggestions for improvement")
    is_accessible: bool = Field(
        description="Whether the link text makes its destination or action clear"
    )
    reasoning: str = Field(description="Explanation of the accessibility assessment")


@dataclass(frozen=True)
class ResponseContract:
    """Name, validating model and output budget requested from the service."""

    name: str
    model: Type[StrictResult]
    max_tokens: int

    @property
    def schema(self) -> Dict[str, Any]:
        return response_schema(self.model)


SCHEMAS: Dict[Tuple[Category, Phase], ResponseContract] = {
    (Category.IMAGE, Phase.GENERATE): ResponseContract("alt_text_response", AltTextResponse, 200),
    (Category.IMAGE, Phase.ANALYZE): ResponseContract("alt_text_analysis", AltTextAnalysis, 300),
    (Category.FORM_FIELD, Phase.GENERATE): ResponseContract("form_field_help", FormFieldHelp, 300),
    (Category.FORM_FIELD, Phase.ANALYZE): ResponseContract(
        "form_accessibility_analysis", FormAccessibilityAnalysis, 400
    ),
    (Category.LINK, Phase.GENERATE): ResponseContract(
        "link_text_enhancement", LinkTextEnhancement, 300
    ),
    (Category.LINK, Phase.ANALYZE): ResponseContract(
        "link_accessibility_analysis", LinkAccessibilityAnalysis, 400
    ),
}


def _strip_titles(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _strip_titles(item) for key, item in value.items() if key != "title"}
    if isinstance(value, list):
        return [_strip_titles(item) for item in value]
    return value


def response_schema(model: Type[BaseModel]) -> Dict[str, Any]:
    """JSON schema for ``response_format`` with every field required and no extras."""
    schema = _strip_titles(model.model_json_schema())
    schema["required"] = list(model.model_fields)
    schema["additionalProperties"] = False
    return schema


def contract_for(category: Category, phase: Phase) -> ResponseContract:
    return SCHEMAS[(category, phase)]
