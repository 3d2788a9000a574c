from aws_cdk import (
    Tags,
    aws_ec2 as ec2,
    aws_ssm as ssm,
)
from constructs import Construct

from common import constants
from common.stack_context import StackContext


class Networking(Construct):
    """VPC, security groups and interface endpoints shared by the service."""

    def __init__(self, scope: Construct, construct_id: str, env_name: str) -> None:
        super().__init__(scope, construct_id)
        self.context = StackContext(scope=self, env=env_name)

        self.vpc = self.create_vpc()
        self.associate_dhcp_options()
        self.create_vpc_id_ssm_parameter()
        self.lb_sg = self.create_lb_sg()
        self.internal_sg = self.create_internal_sg(self.lb_sg)
        self.vpc_endpoints = self.vpc_endpoint(self.internal_sg)

    @property
    def private_subnets(self) -> ec2.SubnetSelection:
        return ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS)

    @property
    def public_subnets(self) -> ec2.SubnetSelection:
        return ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC)

    def create_vpc(self) -> ec2.Vpc:
        return ec2.Vpc(
            self,
            self.context.build_resource_id("vpc"),
            vpc_name=self.context.build_resource_name("vpc"),
            ip_addresses=ec2.IpAddresses.cidr(constants.VPC_CIDR),
            max_azs=constants.MAX_AZS,
            nat_gateways=constants.NAT_GATEWAYS,
            enable_dns_hostnames=True,
            enable_dns_support=True,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name="Public-Subnet",
                    subnet_type=ec2.SubnetType.PUBLIC,
                    cidr_mask=constants.CIDR_MASK,
                ),
                ec2.SubnetConfiguration(
                    name="Private-Subnet",
                    subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
                    cidr_mask=constants.CIDR_MASK,
                ),
            ],
        )

    def associate_dhcp_options(self) -> ec2.CfnVPCDHCPOptionsAssociation:
        dhcp_options = ec2.CfnDHCPOptions(
            self,
            self.context.build_resource_id("dhcp-options"),
            domain_name_servers=[constants.AMAZON_PROVIDED_DNS],
        )
        return ec2.CfnVPCDHCPOptionsAssociation(
            self,
            self.context.build_resource_id("dhcp-options-association"),
            vpc_id=self.vpc.vpc_id,
            dhcp_options_id=dhcp_options.ref,
        )

    def create_vpc_id_ssm_parameter(self) -> ssm.StringParameter:
        """Persist vpc id in SSM"""
        return ssm.StringParameter(
            self,
            constants.VPC_ID_PARAMETER_NAME,
            description="Contains the Pontus VPC ID",
            parameter_name=f"{constants.VPC_ID_PARAMETER_NAME}-{self.context.env}",
            string_value=self.vpc.vpc_id,
        )

    def create_lb_sg(self) -> ec2.SecurityGroup:
        lb_sg = ec2.SecurityGroup(
            self,
            id=self.context.build_resource_id("lb-sg"),
            vpc=self.vpc,
            allow_all_outbound=True,
            description="Security group for the application load balancer",
        )
        lb_sg.add_ingress_rule(
            peer=ec2.Peer.ipv4(constants.ANY_IPV4_CIDR),
            connection=ec2.Port.tcp(80),
            description="Allow inbound HTTP (TCP/80) from the internet",
        )
        lb_sg.add_ingress_rule(
            peer=ec2.Peer.ipv4(constants.ANY_IPV4_CIDR),
            connection=ec2.Port.tcp(443),
            description="Allow inbound HTTPS (TCP/443) from the internet",
        )
        return lb_sg

    def create_internal_sg(self, lb_sg: ec2.ISecurityGroup) -> ec2.SecurityGroup:
        internal_sg = ec2.SecurityGroup(
            self,
            id=self.context.build_resource_id("internal-sg"),
            vpc=self.vpc,
            allow_all_outbound=True,
            description="Security group for services and datastores inside the VPC",
        )
        internal_sg.add_ingress_rule(
            peer=internal_sg,
            connection=ec2.Port.all_traffic(),
            description="Allow all traffic between members of the internal group",
        )
        internal_sg.add_ingress_rule(
            peer=lb_sg,
            connection=ec2.Port.tcp(constants.CONTAINER_PORT),
            description="Allow HTTP (TCP/80) from the load balancer",
        )
        Tags.of(internal_sg).add("Name", constants.INTERNAL_SG_NAME_TAG)
        return internal_sg

    def vpc_endpoint(
        self, internal_sg: ec2.ISecurityGroup
    ) -> list[ec2.InterfaceVpcEndpoint]:
        """Add the Session Manager interface endpoints used by ECS exec."""
        services = {
            "SsmEndpoint": ec2.InterfaceVpcEndpointAwsService.SSM,
            "SsmMessagesEndpoint": ec2.InterfaceVpcEndpointAwsService.SSM_MESSAGES,
            "Ec2MessagesEndpoint": ec2.InterfaceVpcEndpointAwsService.EC2_MESSAGES,
        }
        return [
            self.vpc.add_interface_endpoint(
                endpoint_id,
                service=service,
                private_dns_enabled=True,
                subnets=self.private_subnets,
                security_groups=[internal_sg],
            )
            for endpoint_id, service in services.items()
        ]
