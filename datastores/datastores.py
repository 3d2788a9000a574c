from aws_cdk import (
    Fn,
    RemovalPolicy,
    aws_amazonmq as amazonmq,
    aws_ec2 as ec2,
    aws_elasticache as elasticache,
    aws_rds as rds,
    aws_secretsmanager as secretsmanager,
)
from constructs import Construct

from common import constants
from common.config import DeploymentConfig
from common.stack_context import StackContext


class Datastores(Construct):
    """Redis cache, PostgreSQL database and RabbitMQ broker.

    Each store exposes its endpoint the way the provider reports it; the
    endpoints are only known once CloudFormation has created the resources.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        config: DeploymentConfig,
        vpc: ec2.IVpc,
        internal_sg: ec2.ISecurityGroup,
    ) -> None:
        super().__init__(scope, construct_id)
        self.context = StackContext(scope=self, env=config.env_name)
        self.vpc = vpc
        self.internal_sg = internal_sg
        self.mq_user = config.mq_user
        self.private_subnet_ids = vpc.select_subnets(
            subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS
        ).subnet_ids

        self.redis_cluster = self._build_redis_cluster()
        self.db_instance = self._build_postgres_instance(config)
        self.broker_credentials = self._build_broker_credentials(config)
        self.rabbitmq_broker = self._build_rabbitmq_broker(self.broker_credentials)

    # Endpoints

    @property
    def cache_endpoint(self) -> str:
        return self.redis_cluster.attr_redis_endpoint_address

    @property
    def cache_port(self) -> str:
        return self.redis_cluster.attr_redis_endpoint_port

    @property
    def database_endpoint(self) -> str:
        """Endpoint in ``host:port`` form."""
        return self.db_instance.instance_endpoint.socket_address

    @property
    def database_credentials(self) -> secretsmanager.ISecret:
        return self.db_instance.secret

    @property
    def broker_endpoint(self) -> str:
        """First AMQPS endpoint URL of the broker."""
        return Fn.select(0, self.rabbitmq_broker.attr_amqp_endpoints)

    # Resource creation

    def _build_redis_cluster(self) -> elasticache.CfnCacheCluster:
        subnet_group = elasticache.CfnSubnetGroup(
            self,
            self.context.build_resource_id(
                "subnet-group", qualifier=constants.QUALIFIER_CACHE
            ),
            description="Private subnets for the Redis cache",
            subnet_ids=self.private_subnet_ids,
            cache_subnet_group_name=self.context.build_resource_name(
                "subnet-group", qualifier=constants.QUALIFIER_CACHE
            ),
        )
        return elasticache.CfnCacheCluster(
            self,
            self.context.build_resource_id(
                "cluster", qualifier=constants.QUALIFIER_CACHE
            ),
            engine=constants.CACHE_ENGINE,
            cache_node_type=constants.CACHE_NODE_TYPE,
            num_cache_nodes=1,
            port=constants.CACHE_PORT,
            cache_subnet_group_name=subnet_group.ref,
            vpc_security_group_ids=[self.internal_sg.security_group_id],
        )

    def _build_postgres_instance(
        self, config: DeploymentConfig
    ) -> rds.DatabaseInstance:
        return rds.DatabaseInstance(
            self,
            self.context.build_resource_id("db", qualifier=constants.QUALIFIER_DATABASE),
            engine=rds.DatabaseInstanceEngine.postgres(
                version=rds.PostgresEngineVersion.VER_16_4
            ),
            instance_type=constants.DATABASE_INSTANCE_TYPE,
            allocated_storage=constants.DATABASE_ALLOCATED_STORAGE,
            database_name=config.postgres_db,
            credentials=rds.Credentials.from_generated_secret(
                config.postgres_user,
                secret_name=self.context.build_resource_name(
                    "credentials", qualifier=constants.QUALIFIER_DATABASE
                ),
            ),
            port=constants.DATABASE_PORT,
            vpc=self.vpc,
            vpc_subnets=ec2.SubnetSelection(
                subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS
            ),
            security_groups=[self.internal_sg],
            storage_encrypted=True,
            publicly_accessible=False,
            deletion_protection=False,
            delete_automated_backups=True,
            removal_policy=RemovalPolicy.DESTROY,
        )

    def _build_broker_credentials(
        self, config: DeploymentConfig
    ) -> secretsmanager.Secret:
        return secretsmanager.Secret(
            self,
            self.context.build_resource_id(
                "credentials", qualifier=constants.QUALIFIER_BROKER
            ),
            secret_name=self.context.build_resource_name(
                "credentials", qualifier=constants.QUALIFIER_BROKER
            ),
            description="RabbitMQ broker user",
            removal_policy=RemovalPolicy.DESTROY,
            generate_secret_string=secretsmanager.SecretStringGenerator(
                secret_string_template=f'{{"username":"{config.mq_user}"}}',
                generate_string_key="password",
                exclude_punctuation=True,
                password_length=constants.BROKER_PASSWORD_LENGTH,
            ),
        )

    def _build_rabbitmq_broker(
        self, credentials: secretsmanager.ISecret
    ) -> amazonmq.CfnBroker:
        return amazonmq.CfnBroker(
            self,
            self.context.build_resource_id(
                "broker", qualifier=constants.QUALIFIER_BROKER
            ),
            broker_name=self.context.build_resource_name(
                "broker", qualifier=constants.QUALIFIER_BROKER
            ),
            engine_type=constants.BROKER_ENGINE_TYPE,
            engine_version=constants.BROKER_ENGINE_VERSION,
            host_instance_type=constants.BROKER_INSTANCE_TYPE,
            deployment_mode=constants.BROKER_DEPLOYMENT_MODE,
            auto_minor_version_upgrade=True,
            publicly_accessible=False,
            security_groups=[self.internal_sg.security_group_id],
            subnet_ids=[self.private_subnet_ids[0]],
            users=[
                amazonmq.CfnBroker.UserProperty(
                    username=self.mq_user,
                    password=credentials.secret_value_from_json(
                        "password"
                    ).unsafe_unwrap(),
                )
            ],
        )
