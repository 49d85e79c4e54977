#!/usr/bin/env python3
"""
Diese web app - AWS CDK Application

Deploys the Diese web app (Next.js on ECS Fargate + RDS PostgreSQL) to AWS.

Stacks:
  NetworkStack  → VPC, subnets, security groups, VPC endpoints
  EcrStack      → ECR repositories (web app + DB migrations images)
  DataStack     → RDS PostgreSQL, DB credential secret, app secrets bundle
  IamStack      → ECS task/execution roles, GitHub Actions deploy user
  EcsStack      → ECS cluster, Fargate service, ALB, autoscaling

Usage:
  pip install -e .
  cd infra
  cdk bootstrap aws://ACCOUNT_ID/REGION
  APP_ENV=staging cdk deploy --all

  # Force a new database password on this deploy:
  APP_ENV=production ROTATE_DB_CREDENTIALS=true cdk deploy --all

Environment variables (set before cdk deploy, or in a .env file):
  CDK_DEFAULT_ACCOUNT    → your AWS account ID
  CDK_DEFAULT_REGION     → target region (default: ca-central-1)
  APP_ENV                → "staging" | "production" (default: staging)
  ROTATE_DB_CREDENTIALS  → "true" to regenerate the DB password (default: false)
  See provisioning/config.py for the full list.

Synth reads the currently stored DB credential secret and may call
secretsmanager:GetRandomPassword, so it needs AWS credentials for the target account.
"""
import aws_cdk as cdk

from provisioning.config import config
from provisioning.credentials import CredentialResolver
from provisioning.events import setup_logging
from provisioning.secret_store import SecretsManagerLookup, SecretsManagerPasswordGenerator
from stacks.data_stack import DataStack
from stacks.ecr_stack import WEB_APP, EcrStack
from stacks.ecs_stack import EcsStack
from stacks.iam_stack import IamStack
from stacks.network_stack import NetworkStack

config.validate()
setup_logging(config.LOG_LEVEL)

app = cdk.App()

env = cdk.Environment(account=config.AWS_ACCOUNT, region=config.AWS_REGION)

app_env = config.APP_ENV
prefix  = config.resource_prefix

credential_resolver = CredentialResolver(
    lookup=SecretsManagerLookup(config.db_secret_name),
    generate=SecretsManagerPasswordGenerator(),
    policy=config.password_policy,
)

# ── Stack 1: Network ──────────────────────────────────────────────────────────
network = NetworkStack(app, f"{prefix}-Network", app_env=app_env, db_port=config.DB_PORT, env=env)

# ── Stack 2: ECR repositories ─────────────────────────────────────────────────
ecr = EcrStack(app, f"{prefix}-ECR", app_env=app_env, env=env)

# ── Stack 3: Data layer ───────────────────────────────────────────────────────
data = DataStack(
    app,
    f"{prefix}-Data",
    vpc=network.vpc,
    data_sg=network.data_sg,
    settings=config,
    credential_resolver=credential_resolver,
    env=env,
)

# ── Stack 4: IAM roles ────────────────────────────────────────────────────────
iam = IamStack(
    app,
    f"{prefix}-IAM",
    app_env=app_env,
    app_secret=data.app_secret,
    db_secret=data.db_secret,
    env=env,
)

# ── Stack 5: ECS cluster + service ───────────────────────────────────────────
ecs = EcsStack(
    app,
    f"{prefix}-ECS",
    vpc=network.vpc,
    app_sg=network.app_sg,
    alb_sg=network.alb_sg,
    repository=ecr.repos[WEB_APP],
    task_role_arn=iam.task_role.role_arn,
    execution_role_arn=iam.execution_role.role_arn,
    app_secret=data.app_secret,
    db_secret=data.db_secret,
    settings=config,
    env=env,
)

# Explicit dependency order
data.add_dependency(network)
iam.add_dependency(data)
ecs.add_dependency(iam)
ecs.add_dependency(ecr)
ecs.add_dependency(data)

# Tags applied to ALL resources
for key, value in {
    "Project": config.PROJECT_NAME,
    "Environment": app_env,
    "ManagedBy": "cdk",
}.items():
    cdk.Tags.of(app).add(key, value)

app.synth()
