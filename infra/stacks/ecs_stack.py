"""
EcsStack - ECS Fargate cluster, service, task definition and ALB.

Service (always-on):
  diese-web-app  → Next.js container, port 80, behind an internet-facing ALB
                   Runs as uid/gid 1001, health check on /api/health
                   Auto-scales between ECS_MIN_CONTAINERS and ECS_MAX_CONTAINERS
                   on CPU (70%) and memory (80%)

Secrets (injected by the ECS agent, never baked into the image):
  app bundle  → JWT_SECRET, Clerk keys, LLM provider keys
  DB record   → DB_USERNAME / DB_PASSWORD / DB_HOST / DB_PORT / DB_NAME / DATABASE_URL

Image:
  The image tag is read from the CDK_IMAGE_TAG env var (default: "latest").
  In CI/CD: set CDK_IMAGE_TAG=$(git rev-parse --short HEAD) before cdk deploy.

Roles:
  Task and execution roles are imported read-only from IamStack; grants that
  CDK would normally add here are already declared there.
"""
import aws_cdk as cdk
from aws_cdk import (
    aws_ec2 as ec2,
    aws_ecr as ecr,
    aws_ecs as ecs,
    aws_elasticloadbalancingv2 as elbv2,
    aws_iam as iam,
    aws_logs as logs,
    aws_secretsmanager as secretsmanager,
)
from constructs import Construct

from provisioning.config import Config
from provisioning.credentials import KEY_HOST, KEY_NAME, KEY_PASSWORD, KEY_PORT, KEY_URL, KEY_USERNAME
from provisioning.events import log_event
from provisioning.secret_store import AppSecret
from stacks.iam_stack import log_group_name
from stacks.network_stack import CONTAINER_PORT

HEALTH_CHECK_PATH = "/api/health"

# AppSecret.API_KEY stays server-side only (not exposed to the web container)
CONTAINER_APP_SECRETS = [
    AppSecret.JWT_SECRET,
    AppSecret.NEXT_PUBLIC_CLERK_PUBLISHABLE_KEY,
    AppSecret.CLERK_SECRET_KEY,
    AppSecret.GEMINI_API_KEY,
    AppSecret.GROQ_API_KEY,
    AppSecret.OPENAI_API_KEY,
]
CONTAINER_DB_SECRETS = [KEY_USERNAME, KEY_PASSWORD, KEY_HOST, KEY_PORT, KEY_NAME, KEY_URL]


class EcsStack(cdk.Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        vpc: ec2.IVpc,
        app_sg: ec2.ISecurityGroup,
        alb_sg: ec2.ISecurityGroup,
        repository: ecr.IRepository,
        task_role_arn: str,
        execution_role_arn: str,
        app_secret: secretsmanager.ISecret,
        db_secret: secretsmanager.ISecret,
        settings: Config,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        app_env = settings.APP_ENV

        # ── ECS Cluster ────────────────────────────────────────────────────────
        self.cluster = ecs.Cluster(
            self, "Cluster",
            cluster_name=f"diese-cluster-{app_env}",
            vpc=vpc,
            container_insights=True,
        )

        # ── CloudWatch Log Groups ──────────────────────────────────────────────
        log_group = logs.LogGroup(
            self, "AppLogs",
            log_group_name=log_group_name(app_env, "ecs"),
            retention=logs.RetentionDays.ONE_MONTH,
            removal_policy=cdk.RemovalPolicy.DESTROY,
        )
        logs.LogGroup(
            self, "EcrLogs",
            log_group_name=log_group_name(app_env, "ecr"),
            retention=logs.RetentionDays.ONE_MONTH,
            removal_policy=cdk.RemovalPolicy.DESTROY,
        )

        # ── Roles (read-only imports) ──────────────────────────────────────────
        task_role = iam.Role.from_role_arn(self, "TaskRole", task_role_arn, mutable=False)
        execution_role = iam.Role.from_role_arn(
            self, "ExecutionRole", execution_role_arn, mutable=False
        )

        # ── Task Definition ────────────────────────────────────────────────────
        task_def = ecs.FargateTaskDefinition(
            self, "WebAppTaskDef",
            family=f"diese-web-app-task-{app_env}",
            cpu=settings.ECS_CPU,
            memory_limit_mib=settings.ECS_MEMORY,
            task_role=task_role,
            execution_role=execution_role,
        )

        secrets = {
            key.value: ecs.Secret.from_secrets_manager(app_secret, key.value)
            for key in CONTAINER_APP_SECRETS
        }
        secrets.update({
            key: ecs.Secret.from_secrets_manager(db_secret, key)
            for key in CONTAINER_DB_SECRETS
        })

        # ── Container ──────────────────────────────────────────────────────────
        self.container = task_def.add_container(
            "web",
            container_name=f"diese-container-{app_env}",
            image=ecs.ContainerImage.from_ecr_repository(repository, tag=settings.IMAGE_TAG),
            essential=True,
            cpu=settings.ECS_CPU_TARGET,
            memory_reservation_mib=settings.ECS_MEMORY_TARGET,
            user="1001:1001",
            linux_parameters=ecs.LinuxParameters(self, "WebLinuxParams", init_process_enabled=True),
            logging=ecs.LogDrivers.aws_logs(
                stream_prefix="ecs",
                log_group=log_group,
            ),
            environment={
                "NODE_ENV":           app_env,
                "PORT":               str(CONTAINER_PORT),
                "AUTHORIZED_DOMAINS": ",".join(settings.AUTHORIZED_DOMAINS),
            },
            secrets=secrets,
            port_mappings=[
                ecs.PortMapping(container_port=CONTAINER_PORT, protocol=ecs.Protocol.TCP),
            ],
            health_check=ecs.HealthCheck(
                command=[
                    "CMD-SHELL",
                    "node -e 'fetch(\"http://localhost:80/api/health\")"
                    ".then(r => process.exit(r.ok ? 0 : 1))'",
                ],
                interval=cdk.Duration.seconds(15),
                timeout=cdk.Duration.seconds(5),
                retries=3,
                start_period=cdk.Duration.seconds(60),
            ),
        )
        log_event(
            app_env, "ECR", "Task definition uses ECR image",
            family=f"diese-web-app-task-{app_env}",
            tag=settings.IMAGE_TAG,
        )

        # ── Fargate Service ────────────────────────────────────────────────────
        self.service = ecs.FargateService(
            self, "WebAppService",
            service_name=f"diese-service-{app_env}",
            cluster=self.cluster,
            task_definition=task_def,
            desired_count=1,
            min_healthy_percent=100,
            max_healthy_percent=200,
            health_check_grace_period=cdk.Duration.seconds(60),
            platform_version=ecs.FargatePlatformVersion.LATEST,
            assign_public_ip=False,
            security_groups=[app_sg],
            vpc_subnets=ec2.SubnetSelection(
                subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS
            ),
        )

        # ── Application Load Balancer ──────────────────────────────────────────
        self.alb = elbv2.ApplicationLoadBalancer(
            self, "Alb",
            load_balancer_name=f"diese-alb-{app_env}",
            vpc=vpc,
            internet_facing=True,
            security_group=alb_sg,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC),
        )

        listener = self.alb.add_listener(
            "HttpListener",
            port=80,
            open=False,  # alb_sg already allows 80/443 from anywhere
        )

        listener.add_targets(
            "WebTarget",
            port=CONTAINER_PORT,
            protocol=elbv2.ApplicationProtocol.HTTP,
            targets=[self.service],
            health_check=elbv2.HealthCheck(
                path=HEALTH_CHECK_PATH,
                interval=cdk.Duration.seconds(30),
                timeout=cdk.Duration.seconds(10),
                healthy_http_codes="200",
            ),
            deregistration_delay=cdk.Duration.seconds(30),
        )

        # ── Auto-scaling ───────────────────────────────────────────────────────
        scaling = self.service.auto_scale_task_count(
            min_capacity=settings.ECS_MIN_CONTAINERS,
            max_capacity=settings.ECS_MAX_CONTAINERS,
        )
        scaling.scale_on_cpu_utilization(
            "ScaleOnCpu",
            target_utilization_percent=70,
            scale_in_cooldown=cdk.Duration.seconds(settings.ECS_SCALE_IN_COOLDOWN),
            scale_out_cooldown=cdk.Duration.seconds(settings.ECS_SCALE_OUT_COOLDOWN),
        )
        scaling.scale_on_memory_utilization(
            "ScaleOnMemory",
            target_utilization_percent=80,
            scale_in_cooldown=cdk.Duration.seconds(settings.ECS_SCALE_IN_COOLDOWN),
            scale_out_cooldown=cdk.Duration.seconds(settings.ECS_SCALE_OUT_COOLDOWN),
        )

        # ── Outputs ────────────────────────────────────────────────────────────
        cdk.CfnOutput(self, "AlbDnsName",  value=self.alb.load_balancer_dns_name)
        cdk.CfnOutput(self, "AppUrl",      value=f"http://{self.alb.load_balancer_dns_name}")
        cdk.CfnOutput(self, "ClusterName", value=self.cluster.cluster_name)
        cdk.CfnOutput(self, "ServiceName", value=self.service.service_name)
