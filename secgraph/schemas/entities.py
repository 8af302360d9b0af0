import math
import re
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, List, Optional, Type

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, field_validator

CVE_ID_PATTERN = re.compile(r"^CVE-\d{4}-\d+$")


class Severity(str, Enum):
    critical = "Critical"
    high = "High"
    medium = "Medium"
    low = "Low"
    info = "Info"


def coerce_severity(value: Any) -> Optional[Severity]:
    """Map free-form severity text onto the closed Severity set, or None."""
    if value is None or isinstance(value, Severity):
        return value
    if not isinstance(value, str):
        return None
    lowered = value.strip().lower()
    if lowered == "informational":
        return Severity.info
    for severity in Severity:
        if severity.value.lower() == lowered:
            return severity
    return None


def coerce_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def coerce_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def coerce_rating(value: Any) -> Optional[int]:
    """Integer rating clamped to [1, 10]."""
    number = coerce_number(value)
    if number is None:
        return None
    return max(1, min(10, int(round(number))))


def coerce_cvss(value: Any) -> Optional[float]:
    number = coerce_number(value)
    if number is None or number < 0 or number > 10:
        return None
    return number


OptionalText = Annotated[Optional[str], BeforeValidator(coerce_text)]
Rating = Annotated[Optional[int], BeforeValidator(coerce_rating)]
CvssScore = Annotated[Optional[float], BeforeValidator(coerce_cvss)]
OptionalSeverity = Annotated[Optional[Severity], BeforeValidator(coerce_severity)]


class Entity(BaseModel):
    """Base for every extracted entity kind.

    Unknown fields coming back from the generation capability are ignored;
    optional attributes that cannot be coerced become None instead of failing
    the whole entity. Only a missing display key rejects an entity.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    kind: ClassVar[str] = ""
    key_field: ClassVar[str] = "name"

    @property
    def key(self) -> str:
        return getattr(self, self.key_field)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class NamedEntity(Entity):
    name: str = Field(..., description="Display key of the entity")

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("name must be a non-empty string")
        return v.strip()


class VulnerabilityEntity(NamedEntity):
    kind: ClassVar[str] = "vulnerability"

    description: OptionalText = None
    severity: OptionalSeverity = None
    cvss_score: CvssScore = Field(
        None,
        validation_alias=AliasChoices("cvssScore", "cvss", "cvss_score"),
        serialization_alias="cvssScore",
    )


class MitigationEntity(NamedEntity):
    kind: ClassVar[str] = "mitigation"

    description: OptionalText = None
    type: OptionalText = None
    effectiveness: Rating = None


class SourceEntity(NamedEntity):
    kind: ClassVar[str] = "source"

    type: OptionalText = None
    url: OptionalText = None
    reliability: Rating = None
    description: OptionalText = None


class ProblemEntity(NamedEntity):
    kind: ClassVar[str] = "problem"

    description: OptionalText = None
    category: OptionalText = None
    impact: OptionalText = None


class AffectedEntity(NamedEntity):
    kind: ClassVar[str] = "affected"

    type: OptionalText = None
    description: OptionalText = None
    impact: OptionalText = None


class RiskEntity(NamedEntity):
    kind: ClassVar[str] = "risk"

    level: OptionalText = None
    probability: Rating = None
    impact: OptionalText = None
    description: OptionalText = None


class CveEntity(Entity):
    kind: ClassVar[str] = "cve"
    key_field: ClassVar[str] = "cve_id"

    cve_id: str = Field(
        ...,
        validation_alias=AliasChoices("cveId", "cve_id"),
        serialization_alias="cveId",
    )
    description: OptionalText = None
    severity: OptionalSeverity = None
    cvss_score: CvssScore = Field(
        None,
        validation_alias=AliasChoices("cvssScore", "cvss", "cvss_score"),
        serialization_alias="cvssScore",
    )

    @field_validator("cve_id", mode="before")
    @classmethod
    def validate_cve_id(cls, v):
        if not isinstance(v, str):
            raise ValueError("cveId must be a string")
        cve_id = v.strip().upper()
        if not CVE_ID_PATTERN.match(cve_id):
            raise ValueError(f"'{v}' is not a valid CVE identifier")
        return cve_id


# Bundle attribute -> entity model, in the order the prompt lists them
ENTITY_CATEGORIES: Dict[str, Type[Entity]] = {
    "vulnerabilities": VulnerabilityEntity,
    "mitigations": MitigationEntity,
    "sources": SourceEntity,
    "problems": ProblemEntity,
    "affected": AffectedEntity,
    "risks": RiskEntity,
    "cves": CveEntity,
}


class EntityBundle(BaseModel):
    model_config = ConfigDict(frozen=True)

    vulnerabilities: List[VulnerabilityEntity] = Field(default_factory=list)
    mitigations: List[MitigationEntity] = Field(default_factory=list)
    sources: List[SourceEntity] = Field(default_factory=list)
    problems: List[ProblemEntity] = Field(default_factory=list)
    affected: List[AffectedEntity] = Field(default_factory=list)
    risks: List[RiskEntity] = Field(default_factory=list)
    cves: List[CveEntity] = Field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        return {category: len(getattr(self, category)) for category in ENTITY_CATEGORIES}

    def is_empty(self) -> bool:
        return not any(self.counts().values())

    def to_prompt_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            category: [entity.to_dict() for entity in getattr(self, category)]
            for category in ENTITY_CATEGORIES
        }
