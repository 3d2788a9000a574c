from aws_cdk import aws_ec2 as ec2, aws_lambda as _lambda

POWER_TOOLS_PYTHON_RUNTIME = "python312"
POWER_TOOLS_LAMBDA_LAYER_NAME = "AWSLambdaPowertoolsPythonV3"
POWER_TOOLS_LAMBDA_LAYER_ACCOUNT = "017000801446"
POWER_TOOLS_VERSION = "18"
POWER_TOOLS_ARCHITECTURE = "x86_64"
POWER_TOOLS_LAYER = "arn:aws:lambda:{region}:{lambda_layer_account}:layer:{power_tools_type}-{runtime}-{architecture}:{version}"

PYTHON_RUNTIME = _lambda.Runtime.PYTHON_3_12
DEFAULT_ARCHITECTURE = _lambda.Architecture.X86_64
LAMBDA_SRC = "lambdas"
COMMON_LAYER_SRC = "layers/common"

DEFAULT_ENV = "dev"
DEFAULT_REGION = "us-east-1"  # Bedrock endpoints

# Naming convention components
SERVICE_NAME = "pontus"  # The application name

# Qualifiers (used in naming)
QUALIFIER_APP = "app"
QUALIFIER_CACHE = "redis"
QUALIFIER_DATABASE = "postgres"
QUALIFIER_BROKER = "rabbitmq"
QUALIFIER_SECRETS_WRITER = "secrets-writer"
QUALIFIER_API = "api"

# Networking
VPC_CIDR = "10.0.0.0/16"
MAX_AZS = 2
NAT_GATEWAYS = 1
CIDR_MASK = 24
ANY_IPV4_CIDR = "0.0.0.0/0"
AMAZON_PROVIDED_DNS = "AmazonProvidedDNS"
INTERNAL_SG_NAME_TAG = "allow-internal-and-outbound"
VPC_ID_PARAMETER_NAME = "PontusVPCID"

# Datastores
CACHE_NODE_TYPE = "cache.t3.micro"
CACHE_ENGINE = "redis"
CACHE_PORT = 6379

DATABASE_INSTANCE_TYPE = ec2.InstanceType.of(ec2.InstanceClass.T3, ec2.InstanceSize.MICRO)
DATABASE_ALLOCATED_STORAGE = 20
DATABASE_PORT = 5432
DATABASE_SSL_MODE = "require"

BROKER_ENGINE_TYPE = "RABBITMQ"
BROKER_ENGINE_VERSION = "3.13"
BROKER_INSTANCE_TYPE = "mq.t3.micro"
BROKER_DEPLOYMENT_MODE = "SINGLE_INSTANCE"
BROKER_PASSWORD_LENGTH = 32

# Service
CONTAINER_NAME = "pontus-core"
CONTAINER_PORT = 80
DEFAULT_CONTAINER_IMAGE = "public.ecr.aws/g6m3b3n1/pontuslabs/core:latest"
TASK_CPU = 1024
TASK_MEMORY_MIB = 2048
DESIRED_COUNT = 1
HEALTH_CHECK_PATH = "/health"
HTTPS_PORT = 443
DEFAULT_LLM_PROVIDER = "deepinfra"
DEFAULT_EXTERNAL_SECRET_NAME = "pontus/external-keys"
APP_SECRET_DESCRIPTION = "Pontus app secrets"

TASK_EXECUTION_MANAGED_POLICY = "service-role/AmazonECSTaskExecutionRolePolicy"
TASK_LOGS_MANAGED_POLICY = "CloudWatchLogsFullAccess"
ECS_TASKS_SERVICE = "ecs-tasks.amazonaws.com"

# GitHub Actions deployment
GITHUB_OIDC_URL = "https://token.actions.githubusercontent.com"
GITHUB_OIDC_HOST = "token.actions.githubusercontent.com"
GITHUB_OIDC_AUDIENCE = "sts.amazonaws.com"
GITHUB_OIDC_THUMBPRINT = "6938fd4d98bab03faadb97b34396831e3780aea1"
GITHUB_ACTIONS_ROLE_NAME = "github-actions-ecs-deploy-role"
ECS_UPDATE_POLICY_NAME = "EcsServiceUpdatePolicy"
