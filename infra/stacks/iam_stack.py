"""
IamStack - IAM roles for ECS tasks and the GitHub Actions deploy user.

Roles:
  task_role       → permissions granted TO the running container (what it can do)
  execution_role  → permissions for ECS control plane (pull image, write logs, get secrets)

task_role grants:
  - logs:CreateLogStream / PutLogEvents  - /ecs/diese-{env}

execution_role grants:
  - AmazonECSTaskExecutionRolePolicy  - pull image from ECR, write container logs
  - secretsmanager:GetSecretValue  - app bundle + DB credential record only
  - logs:CreateLogStream / PutLogEvents  - /ecr/diese-{env}

GitHub Actions:
  {env}-github-actions-ecs-user  → CI user that pushes images and updates the service
  Access key is stored in Secrets Manager ({env}/github-actions/access-key),
  never printed as a stack output.

EcsStack imports both roles read-only, so every grant for them is declared here.
"""
import aws_cdk as cdk
from aws_cdk import (
    aws_iam as iam,
    aws_secretsmanager as secretsmanager,
)
from constructs import Construct

# ECS + ECR actions needed by the deploy workflow (build, push, roll out, roll back)
GITHUB_DEPLOY_ACTIONS = [
    # ECS service management
    "ecs:DescribeServices",
    "ecs:DescribeTaskDefinition",
    "ecs:DescribeTasks",
    "ecs:ListTasks",
    "ecs:RegisterTaskDefinition",
    "ecs:UpdateService",
    "ecs:DeleteService",
    "ecs:CreateService",
    "ecs:ListServices",
    # Deployment and rollback
    "ecs:DeregisterTaskDefinition",
    "ecs:DescribeTaskSets",
    "ecs:UpdateServicePrimaryTaskSet",
    "ecs:CreateTaskSet",
    "ecs:DeleteTaskSet",
    "ecs:UpdateTaskSet",
    "ecs:StopTask",
    "ecs:RunTask",
    "ecs:StartTask",
    # Cluster
    "ecs:DescribeClusters",
    "ecs:ListClusters",
    # Task roles
    "iam:PassRole",
    "iam:GetRole",
    "iam:ListRoles",
    "iam:ListInstanceProfiles",
    # ECR repository management and image push/pull
    "ecr:CreateRepository",
    "ecr:DeleteRepository",
    "ecr:DescribeRepositories",
    "ecr:ListRepositories",
    "ecr:GetRepositoryPolicy",
    "ecr:SetRepositoryPolicy",
    "ecr:DeleteRepositoryPolicy",
    "ecr:GetAuthorizationToken",
    "ecr:BatchCheckLayerAvailability",
    "ecr:GetDownloadUrlForLayer",
    "ecr:ListImages",
    "ecr:DescribeImages",
    "ecr:BatchGetImage",
    "ecr:PutImage",
    "ecr:InitiateLayerUpload",
    "ecr:UploadLayerPart",
    "ecr:CompleteLayerUpload",
    "ecr:BatchDeleteImage",
    "ecr:TagResource",
    "ecr:UntagResource",
    # Scanning and lifecycle policies
    "ecr:PutImageScanningConfiguration",
    "ecr:StartImageScan",
    "ecr:GetImageScanFindings",
    "ecr:PutLifecyclePolicy",
    "ecr:GetLifecyclePolicy",
    "ecr:DeleteLifecyclePolicy",
]


def log_group_name(app_env: str, source: str = "ecs") -> str:
    return f"/{source}/diese-{app_env}"


class IamStack(cdk.Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        app_env: str,
        app_secret: secretsmanager.ISecret,
        db_secret: secretsmanager.ISecret,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # ── Task Role (container permissions) ────────────────────────────────
        self.task_role = iam.Role(
            self,
            "EcsTaskRole",
            role_name=f"diese-task-role-{app_env}",
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
            description="Role that the application within the ECS container assumes",
        )
        self.task_role.add_to_policy(
            iam.PolicyStatement(
                sid="AppLogs",
                effect=iam.Effect.ALLOW,
                actions=["logs:CreateLogStream", "logs:PutLogEvents"],
                resources=[self._log_group_arn(log_group_name(app_env, "ecs"))],
            )
        )

        # ── Execution Role (ECS control plane) ───────────────────────────────
        self.execution_role = iam.Role(
            self,
            "EcsExecutionRole",
            role_name=f"diese-task-execution-role-{app_env}",
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
            description="Role that the ECS service uses to execute tasks",
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(
                    "service-role/AmazonECSTaskExecutionRolePolicy"
                ),
            ],
        )

        # Read exactly the two secrets injected as env vars
        self.execution_role.add_to_policy(
            iam.PolicyStatement(
                sid="SecretsForEnvInjection",
                effect=iam.Effect.ALLOW,
                actions=["secretsmanager:GetSecretValue"],
                resources=[app_secret.secret_arn, db_secret.secret_arn],
            )
        )
        self.execution_role.add_to_policy(
            iam.PolicyStatement(
                sid="EcrEventLogs",
                effect=iam.Effect.ALLOW,
                actions=["logs:CreateLogStream", "logs:PutLogEvents"],
                resources=[self._log_group_arn(log_group_name(app_env, "ecr"))],
            )
        )

        # ── GitHub Actions deploy user ────────────────────────────────────────
        self.github_user = iam.User(
            self,
            "GithubActionsUser",
            user_name=f"{app_env}-github-actions-ecs-user",
            path="/github-actions/",
        )
        self.deploy_policy = iam.ManagedPolicy(
            self,
            "EcsDeploymentPolicy",
            managed_policy_name=f"{app_env}-ecs-deployment-policy",
            description="Policy for GitHub Actions to deploy to ECS and ECR",
            statements=[
                iam.PolicyStatement(
                    effect=iam.Effect.ALLOW,
                    actions=GITHUB_DEPLOY_ACTIONS,
                    resources=["*"],
                ),
            ],
            users=[self.github_user],
        )

        access_key = iam.AccessKey(self, "GithubActionsAccessKey", user=self.github_user)
        self.github_access_key_secret = secretsmanager.Secret(
            self,
            "GithubActionsAccessKeySecret",
            secret_name=f"{app_env}/github-actions/access-key",
            description="Access key for the GitHub Actions deploy user",
            secret_object_value={
                "AWS_ACCESS_KEY_ID": cdk.SecretValue.unsafe_plain_text(access_key.access_key_id),
                "AWS_SECRET_ACCESS_KEY": access_key.secret_access_key,
            },
        )

        # ── Outputs ───────────────────────────────────────────────────────────
        cdk.CfnOutput(self, "TaskRoleArn",         value=self.task_role.role_arn)
        cdk.CfnOutput(self, "ExecutionRoleArn",    value=self.execution_role.role_arn)
        cdk.CfnOutput(self, "GithubUserName",      value=self.github_user.user_name)
        cdk.CfnOutput(self, "GithubKeySecretArn",  value=self.github_access_key_secret.secret_arn)

    def _log_group_arn(self, name: str) -> str:
        return self.format_arn(
            service="logs",
            resource="log-group",
            resource_name=f"{name}:*",
            arn_format=cdk.ArnFormat.COLON_RESOURCE_NAME,
        )
