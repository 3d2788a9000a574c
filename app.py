#!/usr/bin/env python3
"""AWS CDK entrypoint for provisioning the Pontus infrastructure.

This module wires up the core (account level) and application stacks, sharing
a single deployment environment sourced from the CDK CLI defaults. The region
falls back to us-east-1, which is required for the Bedrock endpoints.
Deployment values (domain, database user, ...) are read from the CDK context,
see cdk.json.
"""
import os

import aws_cdk as cdk
from aws_cdk import Environment

import common.constants as constants
from common.config import DeploymentConfig
from core_infra.core_infra_stack import CoreInfraStack
from pontus_app.pontus_app_stack import PontusAppStack

app = cdk.App()
config = DeploymentConfig.from_context(app.node)

env = Environment(
    account=os.getenv("CDK_DEFAULT_ACCOUNT"),
    region=os.getenv("CDK_DEFAULT_REGION", constants.DEFAULT_REGION),
)

CoreInfraStack(app, "PontusCoreInfraStack", config=config, env=env)
PontusAppStack(
    app,
    f"PontusAppStack-{config.env_name}",
    config=config,
    env=env,
)

app.synth()
