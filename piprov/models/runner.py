"""GitHub Actions runner registration request."""
import re
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

# GitHub organisation/user names: alphanumerics and single hyphens
ORG_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,38})$")


class RunnerRequest(BaseModel):
    """Arguments needed to register a self-hosted runner."""

    model_config = ConfigDict(extra='forbid')

    org_name: str = Field(..., description="GitHub organisation the runner joins")
    token: str = Field(..., description="Runner registration token")
    labels: List[str] = Field(..., description="Labels the runner advertises")

    @field_validator('org_name')
    @classmethod
    def validate_org(cls, v):
        v = v.strip()
        if not ORG_RE.match(v):
            raise ValueError(f"Invalid GitHub organisation name: {v}")
        return v

    @field_validator('token')
    @classmethod
    def validate_token(cls, v):
        v = v.strip()
        if not v or any(ch.isspace() for ch in v):
            raise ValueError("Runner token must be a non-empty string without whitespace")
        return v

    @field_validator('labels', mode='before')
    @classmethod
    def split_labels(cls, v):
        if isinstance(v, str):
            v = v.split(",")
        labels = [label.strip() for label in v if label and label.strip()]
        if not labels:
            raise ValueError("At least one runner label is required")
        return labels

    @property
    def url(self) -> str:
        return f"https://github.com/{self.org_name}"

    @property
    def labels_arg(self) -> str:
        return ",".join(self.labels)
