"""
EcrStack - ECR repositories for each container image.

Repositories:
  {env}-diese-web-app-repository                → Next.js web app (ECS service image)
  {env}-diese-web-app-db-migrations-repository  → one-shot DB migrations image

Image lifecycle:
  - Scan on push, mutable tags (CI re-tags "latest")
  - Untagged images beyond the 5 most recent expire
"""
import aws_cdk as cdk
from aws_cdk import aws_ecr as ecr
from constructs import Construct

from provisioning.events import log_event

WEB_APP = "web-app"
DB_MIGRATIONS = "db-migrations"


def repository_name(app_env: str, image: str) -> str:
    if image == WEB_APP:
        return f"{app_env}-diese-web-app-repository"
    return f"{app_env}-diese-web-app-{image}-repository"


class EcrStack(cdk.Stack):
    def __init__(self, scope: Construct, construct_id: str, app_env: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.repos: dict[str, ecr.Repository] = {}

        for image in [WEB_APP, DB_MIGRATIONS]:
            name = repository_name(app_env, image)
            repo = ecr.Repository(
                self,
                image.replace("-", "_").title().replace("_", ""),
                repository_name=name,
                image_scan_on_push=True,
                image_tag_mutability=ecr.TagMutability.MUTABLE,
                removal_policy=cdk.RemovalPolicy.RETAIN,  # don't delete images on stack destroy
                lifecycle_rules=[
                    ecr.LifecycleRule(
                        description="Keep only 5 untagged images",
                        tag_status=ecr.TagStatus.UNTAGGED,
                        max_image_count=5,
                    ),
                ],
            )
            self.repos[image] = repo
            cdk.CfnOutput(self, f"{name}-Uri", value=repo.repository_uri)
            log_event(app_env, "ECR", "Repository declared", repository=name)
