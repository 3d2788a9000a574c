import json
import os
from typing import Any, Optional

import boto3
from attrs import define, field
from attrs.validators import instance_of
from aws_lambda_powertools.logging.logger import Logger
from aws_lambda_powertools.tracing import Tracer
from aws_lambda_powertools.utilities import parameters
from aws_lambda_powertools.utilities.typing import LambdaContext
from botocore.exceptions import ClientError

from endpoint_resolver import ConnectionDescriptor, ServiceKind, resolve

logger: Logger = Logger(
    service="app-secrets-writer", level=os.getenv("LOG_LEVEL", "INFO").upper()
)
tracer: Tracer = Tracer(service="app-secrets-writer")

_secrets_client = None


@define(slots=True, kw_only=True, frozen=True)
class SecretsWriterProperties:
    app_secret_arn: str = field(validator=instance_of(str))
    database_endpoint: str = field(validator=instance_of(str))
    broker_endpoint: str = field(validator=instance_of(str))
    cache_endpoint: str = field(validator=instance_of(str))
    database_credentials_secret_arn: str = field(validator=instance_of(str))
    broker_credentials_secret_arn: str = field(validator=instance_of(str))
    external_secret_name: str = field(validator=instance_of(str))
    database_name: str = field(validator=instance_of(str))
    database_ssl_mode: str = field(default="require", validator=instance_of(str))
    llm_provider: str = field(default="deepinfra", validator=instance_of(str))

    @classmethod
    def from_resource_properties(
        cls, props: dict[str, Any]
    ) -> "SecretsWriterProperties":
        try:
            return cls(
                app_secret_arn=props["AppSecretArn"],
                database_endpoint=props["DatabaseEndpoint"],
                broker_endpoint=props["BrokerEndpoint"],
                cache_endpoint=props["CacheEndpoint"],
                database_credentials_secret_arn=props["DatabaseCredentialsSecretArn"],
                broker_credentials_secret_arn=props["BrokerCredentialsSecretArn"],
                external_secret_name=props["ExternalSecretName"],
                database_name=props["DatabaseName"],
                database_ssl_mode=props.get("DatabaseSslMode", "require"),
                llm_provider=props.get("LlmProvider", "deepinfra"),
            )
        except KeyError as e:
            logger.error("Custom resource property missing", property=e.args[0])
            raise


def _get_secrets_client():
    global _secrets_client
    if _secrets_client is None:
        _secrets_client = boto3.client("secretsmanager")
    return _secrets_client


@tracer.capture_method
def _read_json_secret(secret_id: str) -> dict[str, Any]:
    return parameters.get_secret(secret_id, transform="json", max_age=0)


@tracer.capture_method
def _put_secret_value(secret_arn: str, payload: dict[str, Any]) -> None:
    _get_secrets_client().put_secret_value(
        SecretId=secret_arn, SecretString=json.dumps(payload)
    )


def _credential(
    credentials: dict[str, Any], key: str, fallback: Optional[str]
) -> Optional[str]:
    return credentials.get(key) or fallback


def build_secret_payload(
    props: SecretsWriterProperties,
    database_credentials: dict[str, Any],
    broker_credentials: dict[str, Any],
    external_values: dict[str, Any],
) -> dict[str, Any]:
    """Merge resolved endpoints, credentials and pass-through values.

    Keys from the external secret are copied verbatim; generated credentials
    take precedence over credentials embedded in an endpoint URL.
    """
    if not isinstance(external_values, dict):
        logger.error(
            "External secret is not a JSON object",
            secret=props.external_secret_name,
            value_type=type(external_values).__name__,
        )
        raise ValueError(
            f"ExternalSecretName {props.external_secret_name!r} must hold a JSON "
            f"object, got {type(external_values).__name__}"
        )

    database: ConnectionDescriptor = resolve(
        props.database_endpoint, ServiceKind.RELATIONAL_DATABASE
    )
    broker: ConnectionDescriptor = resolve(
        props.broker_endpoint, ServiceKind.MESSAGE_BROKER
    )
    cache: ConnectionDescriptor = resolve(props.cache_endpoint, ServiceKind.CACHE)

    return {
        **external_values,
        "DATABASE_HOST": database.host,
        "DATABASE_PORT": database.port,
        "DATABASE_NAME": props.database_name,
        "DATABASE_USER": _credential(database_credentials, "username", database.user),
        "DATABASE_PASSWORD": _credential(
            database_credentials, "password", database.password
        ),
        "DATABASE_SSL_MODE": props.database_ssl_mode,
        "RABBITMQ_HOST": broker.host,
        "RABBITMQ_PORT": broker.port,
        "RABBITMQ_USER": _credential(broker_credentials, "username", broker.user),
        "RABBITMQ_PASSWORD": _credential(
            broker_credentials, "password", broker.password
        ),
        "REDIS_HOST": cache.host,
        "REDIS_PORT": cache.port,
        "LLM_PROVIDER": props.llm_provider,
    }


def write_app_secret(props: SecretsWriterProperties) -> None:
    try:
        payload = build_secret_payload(
            props,
            database_credentials=_read_json_secret(
                props.database_credentials_secret_arn
            ),
            broker_credentials=_read_json_secret(props.broker_credentials_secret_arn),
            external_values=_read_json_secret(props.external_secret_name),
        )
        _put_secret_value(props.app_secret_arn, payload)
    except ClientError as e:
        error_info = e.response.get("Error", {})
        logger.exception(
            "Secrets Manager call failed while writing the app secret",
            secret=props.app_secret_arn,
            code=error_info.get("Code", "Unknown"),
        )
        raise
    logger.info(
        "App secret written",
        secret=props.app_secret_arn,
        keys=sorted(payload),
    )


@logger.inject_lambda_context
@tracer.capture_lambda_handler
def handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    request_type = event["RequestType"]
    logger.info("Handling custom resource request", request_type=request_type)

    if request_type == "Delete":
        # The app secret is owned by the stack; nothing to undo here.
        return {"PhysicalResourceId": event["PhysicalResourceId"]}

    props = SecretsWriterProperties.from_resource_properties(
        event["ResourceProperties"]
    )
    write_app_secret(props)
    return {"PhysicalResourceId": props.app_secret_arn}
