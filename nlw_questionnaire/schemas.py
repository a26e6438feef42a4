from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .errors import ValidationError

SECTION_RISK_TOLERANCE = 'riskTolerance'
SECTION_CLIENT_UPDATE = 'clientUpdate'
SECTION_INVESTMENT_POLICY = 'investmentPolicy'

SECTION_TYPES = (SECTION_RISK_TOLERANCE, SECTION_CLIENT_UPDATE, SECTION_INVESTMENT_POLICY)
SCORED_SECTIONS = frozenset([SECTION_RISK_TOLERANCE])

SECTION_TITLES = {
    SECTION_RISK_TOLERANCE: 'Risk Tolerance Assessment',
    SECTION_CLIENT_UPDATE: 'Client Information Update',
    SECTION_INVESTMENT_POLICY: 'Investment Policy Statement',
}

# Ascending, most conservative first. Stored verbatim as Questionnaire.risk_profile.
RISK_PROFILES = (
    'Capital Preservation',
    'Conservative',
    'Conservative Balanced',
    'Balanced',
    'Balanced Growth',
    'Growth',
    'Aggressive Growth',
)


def require_section(section):
    if section not in SECTION_TYPES:
        raise ValidationError(
            f"Invalid section. Valid types are: {', '.join(SECTION_TYPES)}", field='section'
        )
    return section


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self):
        return self.model_dump(mode='json', by_alias=True)


# ==========================================
# TEMPLATE MODEL
# ==========================================

class AnswerOption(CamelModel):
    id: str
    text: str
    value: int


class Question(CamelModel):
    id: str
    text: str
    options: List[AnswerOption] = Field(default_factory=list)

    @model_validator(mode='after')
    def _unique_option_ids(self):
        seen = set()
        for option in self.options:
            if option.id in seen:
                raise ValueError(f"duplicate option id '{option.id}' in question '{self.id}'")
            seen.add(option.id)
        return self


class Template(CamelModel):
    id: str
    section: Optional[str] = None
    title: str
    description: Optional[str] = None
    version: Optional[int] = Field(default=None, ge=1)
    questions: List[Question] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    @field_validator('section')
    @classmethod
    def _known_section(cls, value):
        if value is not None and value not in SECTION_TYPES:
            raise ValueError(f"unknown section '{value}'")
        return value

    @model_validator(mode='after')
    def _derive_section(self):
        # The active template of a section uses the section tag as its id
        if self.section is None and self.id in SECTION_TYPES:
            self.section = self.id
        seen = set()
        for question in self.questions:
            if question.id in seen:
                raise ValueError(f"duplicate question id '{question.id}'")
            seen.add(question.id)
        return self


def parse_template(payload):
    """Validate an incoming template body, raising the engine's ValidationError."""
    try:
        return Template.model_validate(payload)
    except PydanticValidationError as e:
        raise _as_validation_error(e)


# ==========================================
# RECORDS
# ==========================================

class QuestionnaireRecord(CamelModel):
    id: int
    client_id: int
    section: str
    completed: bool = False
    data: Dict[str, Any] = Field(default_factory=dict)
    score: Optional[int] = None
    risk_profile: Optional[str] = None
    template_version: int = 1
    created_at: datetime
    updated_at: datetime


class ClientRecord(CamelModel):
    id: int
    client_number: str
    first_name: str
    name: str
    available_sections: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class ClientCreate(CamelModel):
    client_number: str = Field(min_length=7, max_length=7, pattern=r'^\d+$')
    first_name: str = Field(min_length=1)
    available_sections: List[str] = Field(default_factory=list)

    @field_validator('available_sections')
    @classmethod
    def _known_sections(cls, value):
        for section in value:
            if section not in SECTION_TYPES:
                raise ValueError(f"unknown section '{section}'")
        return value


def parse_client(payload):
    try:
        return ClientCreate.model_validate(payload)
    except PydanticValidationError as e:
        raise _as_validation_error(e)


# ==========================================
# ANSWER PAYLOADS (one schema per section)
# ==========================================

class RiskToleranceAnswers(RootModel[Dict[str, str]]):
    pass


class ClientUpdateAnswers(CamelModel):
    first_name: str = Field(min_length=1)
    address: str
    city: str
    state: str
    zip: str
    annual_income: str
    liquid_assets: str
    retirement_assets: str
    other_assets: str
    financial_goals: str


class InvestmentPolicyAnswers(CamelModel):
    primary_objective: str
    time_horizon: str
    risk_factors: Optional[List[str]] = None
    equities: str
    fixed_income: str
    alternatives: str
    cash: str
    review_frequency: str
    rebalancing_strategy: str
    additional_guidelines: Optional[str] = None


ANSWER_SCHEMAS = {
    SECTION_RISK_TOLERANCE: RiskToleranceAnswers,
    SECTION_CLIENT_UPDATE: ClientUpdateAnswers,
    SECTION_INVESTMENT_POLICY: InvestmentPolicyAnswers,
}


def validate_answers(section, raw):
    """
    Validate a raw answers payload for `section` and return the cleaned mapping.
    Raises ValidationError naming the first offending field.
    """
    require_section(section)
    if raw is None:
        raise ValidationError("Answers are required", field='data')
    schema = ANSWER_SCHEMAS[section]
    try:
        parsed = schema.model_validate(raw)
    except PydanticValidationError as e:
        raise _as_validation_error(e)
    if isinstance(parsed, RootModel):
        return dict(parsed.root)
    return parsed.model_dump(by_alias=True, exclude_none=True)


def _as_validation_error(exc):
    first = exc.errors()[0]
    field = '.'.join(str(part) for part in first.get('loc', ())) or None
    message = f"{field}: {first['msg']}" if field else first['msg']
    return ValidationError(message, field=field)
