from dataclasses import dataclass
from typing import Any, Mapping, Optional
from aws_cdk.assertions import Match, Template
from aws_cdk import App
import pytest

from common.config import DeploymentConfig
from core_infra.core_infra_stack import CoreInfraStack
from pontus_app.pontus_app_stack import PontusAppStack

TEST_CONTEXT = {
    "DOMAIN": "example.com",
    "HOSTED_ZONE_ID": "Z0123456789ABCDEFGHIJ",
    "POSTGRES_DB": "pontus",
    "POSTGRES_USER": "pontus_admin",
    "MQ_USER": "pontus_mq",
    "GITHUB_REPO": "pontus-labs/core",
    "ENV_NAME": "test",
    # Skip Docker bundling of the common layer
    "aws:cdk:bundling-stacks": [],
}


# ------------------- Test Case Data Classes -------------------
@dataclass(frozen=True)
class LambdaTestCase:
    id: str
    function_name: str
    handler: str
    memory_size: int
    timeout: int
    extra_env: Mapping[str, Any]


@dataclass(frozen=True)
class LogGroupTestCase:
    id: str
    log_group_name: str
    retention_days: int


@dataclass(frozen=True)
class UpdateDeletePolicyTestCase:
    id: str
    update_policy: str
    delete_policy: str
    props: Optional[Mapping[str, Any]] = None


# ------------------- Helper Functions -------------------


def find_resources_by_type(
    template: Template, resource_type: str, props: Optional[dict] = None
) -> Mapping[str, Any]:

    return template.find_resources(resource_type, props=props)


def get_single_resource_id(
    resources: Mapping[str, Any], resource_type: str = "resource"
) -> str:
    assert resources, f"No {resource_type} found in template"
    return next(iter(resources))


def build_app(context: Optional[Mapping[str, Any]] = None) -> App:
    return App(context=dict(context if context is not None else TEST_CONTEXT))


def build_template(stack_id: str = "TestPontusAppStack") -> Template:
    app = build_app()
    stack = PontusAppStack(
        app, stack_id, config=DeploymentConfig.from_context(app.node)
    )
    return Template.from_stack(stack)


def build_core_infra_template(stack_id: str = "TestPontusCoreInfraStack") -> Template:
    app = build_app()
    stack = CoreInfraStack(
        app, stack_id, config=DeploymentConfig.from_context(app.node)
    )
    return Template.from_stack(stack)


# ------------------- Pytest Fixtures -------------------


@pytest.fixture(scope="module")
def template() -> Template:
    return build_template()


@pytest.fixture(scope="module")
def json_template(template: Template) -> Mapping[str, Any]:
    return template.to_json()


@pytest.fixture(scope="module")
def core_infra_template() -> Template:
    return build_core_infra_template()


def expected_lambda_props(case: LambdaTestCase) -> Mapping[str, Any]:
    return {
        "FunctionName": Match.string_like_regexp(case.function_name),
        "Handler": case.handler,
        "Runtime": "python3.12",
        "MemorySize": case.memory_size,
        "Timeout": case.timeout,
        "Architectures": ["x86_64"],
        "Code": {
            "S3Bucket": Match.any_value(),
            "S3Key": Match.any_value(),
        },
        "TracingConfig": {"Mode": "Active"},
        "Environment": {"Variables": {**case.extra_env}},
    }
