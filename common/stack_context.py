from attrs import define, field
from aws_cdk import RemovalPolicy, Stack, aws_logs as logs
from constructs import Construct
from typing import Optional

import common.constants as constants


@define(slots=True, frozen=True)
class StackContext:
    scope: Construct
    env: str = field(
        default=constants.DEFAULT_ENV,
        metadata={"description": "Deployment environment (dev, staging, prod)"},
    )
    service: str = field(default=constants.SERVICE_NAME, init=False)

    @property
    def aws_region(self) -> str:
        return Stack.of(self.scope).region

    # ---------- layers ----------
    def build_power_tools_layer_arn(self) -> str:
        region = self.aws_region
        if not region:
            raise ValueError(
                "AWS region is not set, unable to resolve Power Tools Layer ARN"
            )
        return constants.POWER_TOOLS_LAYER.format(
            region=region,
            runtime=constants.POWER_TOOLS_PYTHON_RUNTIME,
            version=constants.POWER_TOOLS_VERSION,
            lambda_layer_account=constants.POWER_TOOLS_LAMBDA_LAYER_ACCOUNT,
            power_tools_type=constants.POWER_TOOLS_LAMBDA_LAYER_NAME,
            architecture=constants.POWER_TOOLS_ARCHITECTURE,
        )

    # ---------- naming ----------
    def build_resource_name(
        self, resource_type: str, qualifier: Optional[str] = None
    ) -> str:
        """Build resource name with optional qualifier.

        Examples:
            - Without qualifier: pontus-cluster-dev
            - With qualifier: pontus-rabbitmq-broker-dev
        """
        if qualifier:
            return f"{self.service}-{qualifier}-{resource_type}-{self.env}".lower()
        return f"{self.service}-{resource_type}-{self.env}".lower()

    def build_resource_id(
        self, resource_type: str, qualifier: Optional[str] = None
    ) -> str:
        """Build resource ID with optional qualifier.

        Examples:
            - Without qualifier: PontusCluster
            - With qualifier: PontusRabbitmqBroker
        """
        parts = [self.service, qualifier, resource_type]
        return "".join(
            part.replace("-", " ").title().replace(" ", "")
            for part in parts
            if part
        )

    def build_log_group(
        self,
        resource_type: str,
        qualifier: Optional[str] = None,
        prefix: str = "/aws/lambda",
    ) -> logs.LogGroup:
        return logs.LogGroup(
            self.scope,
            self.build_resource_id(f"{resource_type}-log-group", qualifier=qualifier),
            log_group_name=f"{prefix}/{self.build_resource_name(resource_type, qualifier=qualifier)}",
            removal_policy=RemovalPolicy.DESTROY,
            retention=logs.RetentionDays.ONE_YEAR,
        )
