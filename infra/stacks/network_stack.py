"""
NetworkStack - VPC, subnets, security groups and VPC endpoints.

Topology:
  - 10.0.0.0/16, 2 Availability Zones
  - Public subnets   → ALB only
  - Private subnets  → ECS tasks (NAT Gateway for outbound to Clerk / LLM APIs)
  - Isolated subnets → RDS PostgreSQL (no internet access)

Security groups:
  alb_sg   → allows 80/443 from internet
  app_sg   → allows the container port from alb_sg; 443 from itself (VPC endpoints)
  data_sg  → allows 5432 from app_sg and from inside the VPC (bastion, migrations)
"""
import aws_cdk as cdk
from aws_cdk import aws_ec2 as ec2
from constructs import Construct

CONTAINER_PORT = 80


class NetworkStack(cdk.Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        app_env: str,
        db_port: int = 5432,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # ── VPC ───────────────────────────────────────────────────────────────
        self.vpc = ec2.Vpc(
            self,
            "Vpc",
            vpc_name=f"diese-vpc-{app_env}",
            ip_addresses=ec2.IpAddresses.cidr("10.0.0.0/16"),
            max_azs=2,
            nat_gateways=2 if app_env == "production" else 1,
            enable_dns_hostnames=True,
            enable_dns_support=True,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name="Public",
                    subnet_type=ec2.SubnetType.PUBLIC,
                    cidr_mask=24,
                ),
                ec2.SubnetConfiguration(
                    name="Private",
                    subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
                    cidr_mask=24,
                ),
                ec2.SubnetConfiguration(
                    name="Isolated",
                    subnet_type=ec2.SubnetType.PRIVATE_ISOLATED,
                    cidr_mask=24,
                ),
            ],
        )

        # ── Security groups ───────────────────────────────────────────────────

        # ALB: internet-facing (80 + 443)
        self.alb_sg = ec2.SecurityGroup(
            self, "AlbSg",
            vpc=self.vpc,
            description="ALB - allow HTTP/HTTPS from internet",
            allow_all_outbound=True,
        )
        self.alb_sg.add_ingress_rule(ec2.Peer.any_ipv4(), ec2.Port.tcp(80),  "HTTP")
        self.alb_sg.add_ingress_rule(ec2.Peer.any_ipv4(), ec2.Port.tcp(443), "HTTPS")

        # App (ECS tasks): web traffic only through the ALB
        self.app_sg = ec2.SecurityGroup(
            self, "AppSg",
            vpc=self.vpc,
            description="ECS tasks - allow web traffic from ALB",
            allow_all_outbound=True,
        )
        self.app_sg.add_ingress_rule(self.alb_sg, ec2.Port.tcp(CONTAINER_PORT), "Web from ALB")
        self.app_sg.add_ingress_rule(self.app_sg, ec2.Port.tcp(443), "HTTPS to VPC endpoints")

        # Data (RDS): ECS tasks and in-VPC tooling
        self.data_sg = ec2.SecurityGroup(
            self, "DataSg",
            vpc=self.vpc,
            description="RDS PostgreSQL - allow 5432 from ECS tasks and the VPC",
            allow_all_outbound=False,
        )
        self.data_sg.add_ingress_rule(self.app_sg, ec2.Port.tcp(db_port), "Postgres from ECS")
        self.data_sg.add_ingress_rule(
            ec2.Peer.ipv4(self.vpc.vpc_cidr_block), ec2.Port.tcp(db_port), "Postgres from within VPC"
        )

        # ── VPC Endpoints (tasks pull images and secrets without NAT) ────────
        self.vpc.add_interface_endpoint(
            "SecretsEndpoint",
            service=ec2.InterfaceVpcEndpointAwsService.SECRETS_MANAGER,
        )
        self.vpc.add_interface_endpoint(
            "EcrApiEndpoint",
            service=ec2.InterfaceVpcEndpointAwsService.ECR,
        )
        self.vpc.add_interface_endpoint(
            "EcrDkrEndpoint",
            service=ec2.InterfaceVpcEndpointAwsService.ECR_DOCKER,
        )
        # S3 gateway (ECR image layers)
        self.vpc.add_gateway_endpoint(
            "S3Endpoint",
            service=ec2.GatewayVpcEndpointAwsService.S3,
        )
        self.vpc.add_interface_endpoint(
            "CwLogsEndpoint",
            service=ec2.InterfaceVpcEndpointAwsService.CLOUDWATCH_LOGS,
        )

        # ── Outputs ───────────────────────────────────────────────────────────
        cdk.CfnOutput(self, "VpcId",    value=self.vpc.vpc_id)
        cdk.CfnOutput(self, "AlbSgId",  value=self.alb_sg.security_group_id)
        cdk.CfnOutput(self, "AppSgId",  value=self.app_sg.security_group_id)
        cdk.CfnOutput(self, "DataSgId", value=self.data_sg.security_group_id)
