"""
DataStack - Persistent data layer.

Resources:
  RDS PostgreSQL 17 (single instance)
    - KMS-encrypted storage, key rotation enabled
    - Isolated subnets only, never publicly accessible
    - Enhanced monitoring (60s) + Performance Insights
    - Production: multi-AZ, deletion protection, 30-day backups, final snapshot

  Secrets Manager - DB credential record  ({env}/{db}/credentials-1)
    - DB_USERNAME / DB_PASSWORD / DB_PORT / DB_HOST / DB_NAME / DATABASE_URL
    - Password reused across deploys unless ROTATE_DB_CREDENTIALS=true
      or the stored record is missing/incomplete (see provisioning.credentials)

  Secrets Manager - App secrets bundle  (diese-web-app-secrets-{env})
    - Clerk, JWT, LLM provider keys; injected as env vars into the ECS task
    - Production values are placeholders, populate via CLI after first deploy
"""
import aws_cdk as cdk
from aws_cdk import (
    aws_ec2 as ec2,
    aws_iam as iam,
    aws_kms as kms,
    aws_rds as rds,
    aws_secretsmanager as secretsmanager,
)
from constructs import Construct

from provisioning.config import Config
from provisioning.credentials import CredentialResolver, InstanceCoordinates, assemble_record
from provisioning.events import log_event
from provisioning.secret_store import default_app_secret_values


class DataStack(cdk.Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        vpc: ec2.IVpc,
        data_sg: ec2.ISecurityGroup,
        settings: Config,
        credential_resolver: CredentialResolver,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        app_env = settings.APP_ENV
        prod = settings.is_production
        db_name = settings.MAIN_DB_RESOURCE_NAME

        # ── Encryption key ─────────────────────────────────────────────────────
        kms_key = kms.Key(
            self, "DbKey",
            description="KMS key for RDS encryption",
            enable_key_rotation=True,
            alias=f"alias/{app_env}-{db_name}",
        )

        # ── Parameter group - log every connect / disconnect ──────────────────
        engine = rds.DatabaseInstanceEngine.postgres(
            version=rds.PostgresEngineVersion.of("17.4", "17"),
        )
        parameter_group = rds.ParameterGroup(
            self, "DbParameters",
            engine=engine,
            description="Custom parameter group for PostgreSQL 17",
            parameters={
                "log_connections": "1",
                "log_disconnections": "1",
            },
        )

        # ── Enhanced monitoring role ──────────────────────────────────────────
        monitoring_role = iam.Role(
            self, "DbMonitoringRole",
            role_name=f"{app_env}-{db_name}-monitoring-role",
            assumed_by=iam.ServicePrincipal("monitoring.rds.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(
                    "service-role/AmazonRDSEnhancedMonitoringRole"
                ),
            ],
        )

        # ── Credential decision: reuse or regenerate the master password ──────
        # Reads the currently published record; a generator failure aborts synth.
        decision = credential_resolver.decide(settings.ROTATE_DB_CREDENTIALS)
        log_event(
            app_env, "RDS",
            "Database password generated" if decision.generated else "Database password reused",
            prior_state=decision.prior_state.value,
            rotate=settings.ROTATE_DB_CREDENTIALS,
        )

        # ── RDS PostgreSQL ─────────────────────────────────────────────────────
        self.database = rds.DatabaseInstance(
            self, "Database",
            instance_identifier=f"{app_env}-{db_name}",
            engine=engine,
            instance_type=ec2.InstanceType.of(ec2.InstanceClass.T3, ec2.InstanceSize.MICRO),
            vpc=vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_ISOLATED),
            security_groups=[data_sg],
            port=settings.DB_PORT,
            database_name=db_name,
            credentials=rds.Credentials.from_password(
                settings.MAIN_DB_USERNAME,
                cdk.SecretValue.unsafe_plain_text(decision.password),
            ),
            parameter_group=parameter_group,
            allocated_storage=20,
            max_allocated_storage=100,  # storage autoscaling
            storage_encrypted=True,
            storage_encryption_key=kms_key,
            backup_retention=cdk.Duration.days(30 if prod else 7),
            preferred_backup_window="03:00-04:00",
            auto_minor_version_upgrade=True,
            multi_az=prod,
            publicly_accessible=False,
            enable_performance_insights=True,
            monitoring_interval=cdk.Duration.seconds(60),
            monitoring_role=monitoring_role,
            deletion_protection=prod,
            removal_policy=cdk.RemovalPolicy.SNAPSHOT if prod else cdk.RemovalPolicy.DESTROY,
        )

        # ── DB credential record → Secrets Manager ────────────────────────────
        # Host comes from the live instance; the rest is fixed at provisioning time.
        self.credential_record = assemble_record(
            decision.password,
            InstanceCoordinates(
                username=settings.MAIN_DB_USERNAME,
                host=self.database.db_instance_endpoint_address,
                port=settings.DB_PORT,
                name=db_name,
            ),
        )
        self.db_secret = secretsmanager.Secret(
            self, "DbCredentials",
            secret_name=settings.db_secret_name,
            description=f"Credentials for the {db_name} RDS instance ({app_env})",
            secret_string_value=cdk.SecretValue.unsafe_plain_text(
                self.to_json_string(self.credential_record.to_secret_dict())
            ),
        )

        # ── App secrets bundle ─────────────────────────────────────────────────
        # Populate production values manually after first deploy:
        #   aws secretsmanager put-secret-value \
        #     --secret-id diese-web-app-secrets-production \
        #     --secret-string '{"CLERK_SECRET_KEY":"sk_live_...", ...}'
        self.app_secret = secretsmanager.Secret(
            self, "AppSecrets",
            secret_name=settings.app_secret_name,
            description=f"Secrets for the diese application in {app_env} environment",
            secret_object_value={
                key: cdk.SecretValue.unsafe_plain_text(value)
                for key, value in default_app_secret_values(app_env).items()
            },
        )

        # ── Outputs ───────────────────────────────────────────────────────────
        cdk.CfnOutput(self, "DbEndpoint",   value=self.database.db_instance_endpoint_address)
        cdk.CfnOutput(self, "DbPort",       value=self.database.db_instance_endpoint_port)
        cdk.CfnOutput(self, "DbSecretArn",  value=self.db_secret.secret_arn)
        cdk.CfnOutput(self, "DbSecretName", value=settings.db_secret_name)
        cdk.CfnOutput(self, "AppSecretArn", value=self.app_secret.secret_arn)
