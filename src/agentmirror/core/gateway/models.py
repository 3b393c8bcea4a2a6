"""
Wire models for remote platform responses.

Remote records share their shape with the local metadata documents; the
subclasses here add the fields that only exist on the wire (an agent's
nested flows, a skill's script).
"""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, Field

from agentmirror.core.tree.models import AgentMetadata, FlowMetadata, SkillMetadata


class RemoteAgent(AgentMetadata):
    flows: list[FlowMetadata] = Field(default_factory=list)

    def to_metadata(self) -> AgentMetadata:
        return AgentMetadata.model_validate(self.model_dump(exclude={"flows"}))


class RemoteSkill(SkillMetadata):
    prompt_script: str = ""

    def to_metadata(self) -> SkillMetadata:
        return SkillMetadata.model_validate(self.model_dump(exclude={"prompt_script"}))


class StoredTokens(BaseModel):
    """Access token cache persisted per customer."""

    access_token: str
    refresh_token: str = ""
    expires_at: float = 0.0

    def is_expired(self, skew: float = 10.0) -> bool:
        if not self.expires_at:
            return False
        return time.time() >= self.expires_at - skew

    @classmethod
    def from_token_response(cls, data: dict[str, Any]) -> StoredTokens:
        """
        Normalize the token endpoint's response.

        Raises:
            ValueError: If no access token is present
        """
        access = data.get("access_token") or data.get("token") or data.get("accessToken")
        if not access:
            raise ValueError("Invalid token response: missing access token")
        refresh = data.get("refresh_token") or data.get("refreshToken") or ""
        expires_in = data.get("expires_in") or data.get("expiresIn") or 3600
        return cls(
            access_token=access,
            refresh_token=refresh,
            expires_at=time.time() + float(expires_in),
        )
