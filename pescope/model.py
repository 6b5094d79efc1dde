from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from pescope.standards import Characteristic


class KnownStandard(BaseModel):
    kind: Literal["known"] = "known"
    name: str
    matched: List[Characteristic] = Field(default_factory=list)
    unexpected: List[Characteristic] = Field(default_factory=list)


class UnknownSection(BaseModel):
    kind: Literal["unknown"] = "unknown"
    name: str
    characteristics: List[Characteristic] = Field(default_factory=list)


ComplianceVerdict = Annotated[Union[KnownStandard, UnknownSection], Field(discriminator="kind")]


class SectionRecord(BaseModel):
    name: str
    characteristics: List[Characteristic]
    entropy: Optional[float] = None  # bits per byte, only set when entropy display is on
    high_entropy: bool = False
    verdict: ComplianceVerdict


class CertificateSummary(BaseModel):
    issuer: str
    subject: str
    not_before: datetime
    not_after: datetime
    serial_number: str  # hex
    public_key_algorithm: str
    signature_algorithm: str
    signature_valid: bool
    signer_verified: bool
    content_hash_algorithm: Optional[str] = None
    content_hash: Optional[str] = None  # hex


class FacetResult(BaseModel):
    facet: str
    label: str
    present: bool = True
    message: Optional[str] = None
    data: Any = None
    children: List["FacetResult"] = Field(default_factory=list)


class FileReport(BaseModel):
    path: str
    verbose: bool = False
    parse_failed: bool = False
    facets: List[FacetResult] = Field(default_factory=list)
    errors: List[Dict[str, Any]] = Field(default_factory=list)
