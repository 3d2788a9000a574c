from aws_cdk import (
    BundlingOptions,
    CfnOutput,
    CustomResource,
    Duration,
    Fn,
    RemovalPolicy,
    Stack,
    aws_certificatemanager as acm,
    aws_ecs as ecs,
    aws_elasticloadbalancingv2 as elbv2,
    aws_iam as iam,
    aws_lambda as _lambda,
    aws_logs as logs,
    aws_route53 as route53,
    aws_route53_targets as route53_targets,
    aws_secretsmanager as secretsmanager,
    custom_resources as cr,
)
from constructs import Construct

import common.constants as constants
from common.config import DeploymentConfig
from common.stack_context import StackContext
from datastores.datastores import Datastores
from networking.networking import Networking


class PontusAppStack(Stack):

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: DeploymentConfig,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.config = config
        self.context = StackContext(scope=self, env=config.env_name)

        # VPC, security groups and interface endpoints
        self.networking = Networking(self, "Networking", env_name=config.env_name)
        self.vpc = self.networking.vpc

        # Redis, PostgreSQL and RabbitMQ
        self.datastores = Datastores(
            self,
            "Datastores",
            config=config,
            vpc=self.vpc,
            internal_sg=self.networking.internal_sg,
        )

        # Configure Lambda code and layers
        self.code = _lambda.Code.from_asset(constants.LAMBDA_SRC)
        self.layers = [
            _lambda.LayerVersion.from_layer_version_arn(
                self,
                self.context.build_resource_id("lambda-power-tools-layer"),
                layer_version_arn=self.context.build_power_tools_layer_arn(),
            ),
            self._build_common_layer(),
        ]

        # Application secret, populated once the datastores are available
        self.app_secret_name = self.context.build_resource_name(
            "secrets", qualifier=constants.QUALIFIER_APP
        )
        self.app_secret = self._build_app_secret()
        self.external_secret = secretsmanager.Secret.from_secret_name_v2(
            self,
            self.context.build_resource_id("external-secret"),
            config.external_secret_name,
        )
        self.secrets_writer_log_group = self.context.build_log_group(
            "function", qualifier=constants.QUALIFIER_SECRETS_WRITER
        )
        self.secrets_writer_lambda = self._build_secrets_writer_lambda(
            log_group=self.secrets_writer_log_group
        )
        self.secrets_writer = self._build_secrets_writer_resource(
            self.secrets_writer_lambda
        )

        # DNS and TLS
        self.hosted_zone = route53.HostedZone.from_hosted_zone_attributes(
            self,
            self.context.build_resource_id("hosted-zone"),
            hosted_zone_id=config.hosted_zone_id,
            zone_name=config.domain,
        )
        self.api_certificate = self._build_api_certificate()

        # ECS cluster, load balancer and service
        self.cluster = ecs.Cluster(
            self,
            self.context.build_resource_id("cluster", qualifier=constants.QUALIFIER_APP),
            cluster_name=self.context.build_resource_name(
                "cluster", qualifier=constants.QUALIFIER_APP
            ),
            vpc=self.vpc,
        )
        self.load_balancer = self._build_application_load_balancer()
        self.listener = self._build_https_listener(self.load_balancer)
        self.task_role = self._build_task_role()
        self.execution_role = self._build_execution_role()
        self.container_log_group = self.context.build_log_group(
            "container", qualifier=constants.QUALIFIER_APP, prefix="/ecs"
        )
        self.task_definition = self._build_task_definition(self.container_log_group)
        self.service = self._build_fargate_service(self.task_definition)
        self._register_targets(self.listener, self.service)

        # The container reads the secret at startup and reaches SSM through
        # the interface endpoints.
        self.service.node.add_dependency(self.secrets_writer)
        for endpoint in self.networking.vpc_endpoints:
            self.service.node.add_dependency(endpoint)

        self.api_record = self._build_api_record(self.load_balancer)

        # Permissions
        self.app_secret.grant_write(self.secrets_writer_lambda)
        self.datastores.database_credentials.grant_read(self.secrets_writer_lambda)
        self.datastores.broker_credentials.grant_read(self.secrets_writer_lambda)
        self.external_secret.grant_read(self.secrets_writer_lambda)

        self._build_outputs()

    # Resource creation

    def _build_common_layer(self) -> _lambda.LayerVersion:
        """Third-party packages the Lambda runtime does not ship (attrs)."""
        return _lambda.LayerVersion(
            self,
            self.context.build_resource_id("common-layer"),
            layer_version_name=self.context.build_resource_name("common-layer"),
            code=_lambda.Code.from_asset(
                constants.COMMON_LAYER_SRC,
                bundling=BundlingOptions(
                    image=constants.PYTHON_RUNTIME.bundling_image,
                    command=[
                        "bash",
                        "-c",
                        "pip install -r requirements.txt -t /asset-output/python",
                    ],
                ),
            ),
            compatible_runtimes=[constants.PYTHON_RUNTIME],
            compatible_architectures=[constants.DEFAULT_ARCHITECTURE],
            removal_policy=RemovalPolicy.DESTROY,
        )

    def _build_app_secret(self) -> secretsmanager.Secret:
        return secretsmanager.Secret(
            self,
            self.context.build_resource_id("secrets", qualifier=constants.QUALIFIER_APP),
            secret_name=self.app_secret_name,
            description=constants.APP_SECRET_DESCRIPTION,
            removal_policy=RemovalPolicy.DESTROY,
        )

    def _build_secrets_writer_lambda(
        self, log_group: logs.ILogGroup
    ) -> _lambda.Function:
        return _lambda.Function(
            self,
            self.context.build_resource_id(
                "function", qualifier=constants.QUALIFIER_SECRETS_WRITER
            ),
            function_name=self.context.build_resource_name(
                "function", qualifier=constants.QUALIFIER_SECRETS_WRITER
            ),
            runtime=constants.PYTHON_RUNTIME,
            handler="app_secrets_writer.handler",
            code=self.code,
            architecture=constants.DEFAULT_ARCHITECTURE,
            description=f"Resolves datastore endpoints into the {self.app_secret_name} secret",
            layers=self.layers,
            environment={
                "LOG_LEVEL": "INFO",
                "POWERTOOLS_SERVICE_NAME": "app-secrets-writer",
            },
            timeout=Duration.seconds(60),
            memory_size=256,
            tracing=_lambda.Tracing.ACTIVE,
            log_group=log_group,
        )

    def _build_secrets_writer_resource(
        self, writer: _lambda.IFunction
    ) -> CustomResource:
        provider = cr.Provider(
            self,
            self.context.build_resource_id(
                "provider", qualifier=constants.QUALIFIER_SECRETS_WRITER
            ),
            on_event_handler=writer,
        )
        return CustomResource(
            self,
            self.context.build_resource_id(
                "resource", qualifier=constants.QUALIFIER_SECRETS_WRITER
            ),
            service_token=provider.service_token,
            resource_type="Custom::AppSecretsWriter",
            properties={
                "AppSecretArn": self.app_secret.secret_arn,
                "DatabaseEndpoint": self.datastores.database_endpoint,
                "BrokerEndpoint": self.datastores.broker_endpoint,
                "CacheEndpoint": self.datastores.cache_endpoint,
                "DatabaseCredentialsSecretArn": self.datastores.database_credentials.secret_arn,
                "BrokerCredentialsSecretArn": self.datastores.broker_credentials.secret_arn,
                "ExternalSecretName": self.config.external_secret_name,
                "DatabaseName": self.config.postgres_db,
                "DatabaseSslMode": constants.DATABASE_SSL_MODE,
                "LlmProvider": self.config.llm_provider,
            },
        )

    def _build_api_certificate(self) -> acm.Certificate:
        return acm.Certificate(
            self,
            self.context.build_resource_id("certificate", qualifier=constants.QUALIFIER_API),
            domain_name=self.config.api_domain,
            validation=acm.CertificateValidation.from_dns(self.hosted_zone),
        )

    def _build_application_load_balancer(self) -> elbv2.ApplicationLoadBalancer:
        return elbv2.ApplicationLoadBalancer(
            self,
            self.context.build_resource_id("load-balancer"),
            vpc=self.vpc,
            internet_facing=True,
            security_group=self.networking.lb_sg,
            vpc_subnets=self.networking.public_subnets,
        )

    def _build_https_listener(
        self, alb: elbv2.ApplicationLoadBalancer
    ) -> elbv2.ApplicationListener:
        return alb.add_listener(
            "HTTPSListener",
            port=constants.HTTPS_PORT,
            protocol=elbv2.ApplicationProtocol.HTTPS,
            certificates=[
                elbv2.ListenerCertificate.from_certificate_manager(self.api_certificate)
            ],
            open=False,
        )

    def _build_task_role(self) -> iam.Role:
        task_role = iam.Role(
            self,
            self.context.build_resource_id("task-role"),
            assumed_by=iam.ServicePrincipal(constants.ECS_TASKS_SERVICE),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(
                    constants.TASK_LOGS_MANAGED_POLICY
                )
            ],
        )
        iam.Policy(
            self,
            self.context.build_resource_id("task-role-policy"),
            roles=[task_role],
            statements=[
                iam.PolicyStatement(
                    actions=[
                        "s3:ListBucket",
                        "s3:GetObject",
                        "s3:PutObject",
                        "s3:DeleteObject",
                    ],
                    resources=["*"],
                ),
                iam.PolicyStatement(
                    actions=[
                        "ssmmessages:CreateControlChannel",
                        "ssmmessages:CreateDataChannel",
                        "ssmmessages:OpenControlChannel",
                        "ssmmessages:OpenDataChannel",
                        "ssm:UpdateInstanceInformation",
                    ],
                    resources=["*"],
                ),
                iam.PolicyStatement(
                    actions=[
                        "logs:CreateLogStream",
                        "logs:DescribeLogGroups",
                        "logs:DescribeLogStreams",
                        "logs:PutLogEvents",
                    ],
                    resources=["*"],
                ),
                iam.PolicyStatement(
                    actions=[
                        "secretsmanager:GetSecretValue",
                        "secretsmanager:DescribeSecret",
                    ],
                    resources=[self.app_secret.secret_arn],
                ),
                iam.PolicyStatement(
                    actions=[
                        "bedrock:InvokeModel",
                        "bedrock:InvokeModelWithResponseStream",
                    ],
                    resources=["*"],
                ),
            ],
        )
        return task_role

    def _build_execution_role(self) -> iam.Role:
        return iam.Role(
            self,
            self.context.build_resource_id("execution-role"),
            assumed_by=iam.ServicePrincipal(constants.ECS_TASKS_SERVICE),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(
                    constants.TASK_EXECUTION_MANAGED_POLICY
                )
            ],
        )

    def _build_task_definition(
        self, log_group: logs.ILogGroup
    ) -> ecs.FargateTaskDefinition:
        task_definition = ecs.FargateTaskDefinition(
            self,
            self.context.build_resource_id("task-definition", qualifier=constants.QUALIFIER_APP),
            cpu=constants.TASK_CPU,
            memory_limit_mib=constants.TASK_MEMORY_MIB,
            task_role=self.task_role,
            execution_role=self.execution_role,
        )
        task_definition.add_container(
            constants.CONTAINER_NAME,
            container_name=constants.CONTAINER_NAME,
            image=ecs.ContainerImage.from_registry(self.config.container_image),
            essential=True,
            health_check=ecs.HealthCheck(
                command=[
                    "CMD-SHELL",
                    f"wget -q --spider http://localhost:{constants.CONTAINER_PORT}{constants.HEALTH_CHECK_PATH} || exit 1",
                ],
                interval=Duration.seconds(30),
                timeout=Duration.seconds(5),
                retries=5,
                start_period=Duration.seconds(10),
            ),
            port_mappings=[ecs.PortMapping(container_port=constants.CONTAINER_PORT)],
            environment={
                "AWS_REGION": self.context.aws_region,
                "STACK": self.config.env_name,
                "BASE_URL": self.config.base_url,
                "SECRET_NAME": self.app_secret_name,
            },
            logging=ecs.LogDrivers.aws_logs(
                stream_prefix=constants.CONTAINER_NAME, log_group=log_group
            ),
        )
        return task_definition

    def _build_fargate_service(
        self, task_definition: ecs.FargateTaskDefinition
    ) -> ecs.FargateService:
        return ecs.FargateService(
            self,
            self.context.build_resource_id("service", qualifier=constants.QUALIFIER_APP),
            service_name=self.context.build_resource_name(
                "service", qualifier=constants.QUALIFIER_APP
            ),
            cluster=self.cluster,
            task_definition=task_definition,
            desired_count=constants.DESIRED_COUNT,
            security_groups=[self.networking.internal_sg],
            vpc_subnets=self.networking.private_subnets,
            assign_public_ip=False,
            enable_execute_command=True,
        )

    def _register_targets(
        self, listener: elbv2.ApplicationListener, service: ecs.FargateService
    ) -> elbv2.ApplicationTargetGroup:
        return listener.add_targets(
            "PontusAppTargets",
            port=constants.CONTAINER_PORT,
            protocol=elbv2.ApplicationProtocol.HTTP,
            targets=[service],
            health_check=elbv2.HealthCheck(path=constants.HEALTH_CHECK_PATH),
        )

    def _build_api_record(
        self, alb: elbv2.ApplicationLoadBalancer
    ) -> route53.ARecord:
        return route53.ARecord(
            self,
            self.context.build_resource_id("record", qualifier=constants.QUALIFIER_API),
            zone=self.hosted_zone,
            record_name=self.config.api_domain,
            target=route53.RecordTarget.from_alias(
                route53_targets.LoadBalancerTarget(
                    alb, evaluate_target_health=True
                )
            ),
        )

    def _build_outputs(self) -> None:
        outputs = {
            "ClusterName": self.cluster.cluster_name,
            "EcsClusterArn": self.cluster.cluster_arn,
            "EcsServiceName": self.service.service_name,
            "VpcId": self.vpc.vpc_id,
            "PrivateSubnetIds": Fn.join(
                ",", [subnet.subnet_id for subnet in self.vpc.private_subnets]
            ),
            "PublicSubnetIds": Fn.join(
                ",", [subnet.subnet_id for subnet in self.vpc.public_subnets]
            ),
            "InternalSecurityGroupId": self.networking.internal_sg.security_group_id,
            "RedisEndpoint": self.datastores.cache_endpoint,
            "RedisPort": self.datastores.cache_port,
            "DbEndpoint": self.datastores.db_instance.db_instance_endpoint_address,
            "DbPort": self.datastores.db_instance.db_instance_endpoint_port,
            "RabbitMqEndpoint": self.datastores.broker_endpoint,
            "SecretsManagerArn": self.app_secret.secret_arn,
            "Url": f"http://{self.load_balancer.load_balancer_dns_name}",
            "ApiUrl": self.config.base_url,
        }
        for output_id, value in outputs.items():
            CfnOutput(self, output_id, value=value)
