from aws_cdk import CfnOutput, Stack, aws_iam as iam
from constructs import Construct

import common.constants as constants
from common.config import DeploymentConfig


class CoreInfraStack(Stack):
    """Account level resources: GitHub Actions OIDC trust for ECS deployments."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: DeploymentConfig,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.github_oidc_provider = self._build_github_oidc_provider()
        self.github_actions_role = self._build_github_actions_role(
            provider=self.github_oidc_provider, github_repo=config.github_repo
        )
        self.ecs_update_policy = self._build_ecs_update_policy()
        self.github_actions_role.add_managed_policy(self.ecs_update_policy)

        CfnOutput(
            self, "GithubActionsRoleArn", value=self.github_actions_role.role_arn
        )

    def _build_github_oidc_provider(self) -> iam.OidcProviderNative:
        return iam.OidcProviderNative(
            self,
            "GithubOidcProvider",
            url=constants.GITHUB_OIDC_URL,
            client_ids=[constants.GITHUB_OIDC_AUDIENCE],
            thumbprints=[constants.GITHUB_OIDC_THUMBPRINT],
        )

    def _build_github_actions_role(
        self, provider: iam.IOidcProvider, github_repo: str
    ) -> iam.Role:
        """Role assumed by workflows of ``github_repo`` (any branch or tag)."""
        return iam.Role(
            self,
            "GithubActionsRole",
            role_name=constants.GITHUB_ACTIONS_ROLE_NAME,
            description="Role for GitHub Actions to update ECS services",
            assumed_by=iam.WebIdentityPrincipal(
                provider.oidc_provider_arn,
                conditions={
                    "StringEquals": {
                        f"{constants.GITHUB_OIDC_HOST}:aud": constants.GITHUB_OIDC_AUDIENCE,
                    },
                    "StringLike": {
                        f"{constants.GITHUB_OIDC_HOST}:sub": f"repo:{github_repo}:*",
                    },
                },
            ),
        )

    def _build_ecs_update_policy(self) -> iam.ManagedPolicy:
        return iam.ManagedPolicy(
            self,
            "EcsUpdatePolicy",
            managed_policy_name=constants.ECS_UPDATE_POLICY_NAME,
            description="Allows updating ECS services",
            statements=[
                iam.PolicyStatement(
                    actions=[
                        "ecs:ListClusters",
                        "ecs:ListServices",
                        "ecs:UpdateService",
                        "ecs:DescribeServices",
                        "ecs:DescribeTaskDefinition",
                        "ecs:RegisterTaskDefinition",
                        "ec2:DescribeRegions",
                    ],
                    resources=["*"],
                ),
                iam.PolicyStatement(
                    actions=["iam:PassRole"],
                    resources=["*"],
                    conditions={
                        "StringLike": {
                            "iam:PassedToService": constants.ECS_TASKS_SERVICE
                        }
                    },
                ),
            ],
        )
