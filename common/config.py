from typing import Any

from attrs import NOTHING, define, field, fields
from attrs.validators import instance_of, min_len
from constructs import Node

import common.constants as constants

_required = [instance_of(str), min_len(1)]

# CDK context key -> DeploymentConfig attribute
CONTEXT_KEYS = {
    "DOMAIN": "domain",
    "HOSTED_ZONE_ID": "hosted_zone_id",
    "POSTGRES_DB": "postgres_db",
    "POSTGRES_USER": "postgres_user",
    "MQ_USER": "mq_user",
    "GITHUB_REPO": "github_repo",
    "ENV_NAME": "env_name",
    "CONTAINER_IMAGE": "container_image",
    "EXTERNAL_SECRET_NAME": "external_secret_name",
    "LLM_PROVIDER": "llm_provider",
}


@define(slots=True, frozen=True, kw_only=True)
class DeploymentConfig:
    domain: str = field(validator=_required)
    hosted_zone_id: str = field(validator=_required)
    postgres_db: str = field(validator=_required)
    postgres_user: str = field(validator=_required)
    mq_user: str = field(validator=_required)
    github_repo: str = field(validator=_required)
    env_name: str = field(
        default=constants.DEFAULT_ENV,
        validator=_required,
        metadata={"description": "Deployment environment (dev, staging, prod)"},
    )
    container_image: str = field(
        default=constants.DEFAULT_CONTAINER_IMAGE, validator=_required
    )
    external_secret_name: str = field(
        default=constants.DEFAULT_EXTERNAL_SECRET_NAME,
        validator=_required,
        metadata={"description": "Operator managed secret with API keys"},
    )
    llm_provider: str = field(
        default=constants.DEFAULT_LLM_PROVIDER, validator=_required
    )

    @property
    def api_domain(self) -> str:
        return f"{constants.QUALIFIER_API}.{self.domain}"

    @property
    def base_url(self) -> str:
        return f"https://{self.api_domain}"

    @classmethod
    def from_context(cls, node: Node) -> "DeploymentConfig":
        """Load the deployment config from CDK context (cdk.json or --context)."""
        values: dict[str, Any] = {}
        for context_key, attribute in CONTEXT_KEYS.items():
            value = node.try_get_context(context_key)
            if value is not None:
                values[attribute] = value

        declared = fields(cls)
        missing = [
            context_key
            for context_key, attribute in CONTEXT_KEYS.items()
            if attribute not in values
            and getattr(declared, attribute).default is NOTHING
        ]
        if missing:
            raise ValueError(
                f"Missing required CDK context value(s): {', '.join(missing)}"
            )
        return cls(**values)
