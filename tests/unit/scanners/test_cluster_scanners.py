"""Tests for the Aurora, Elasticsearch and EKS cluster scanners."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock, call

from nuker.models.policy import ApprovedTypes, Policy
from nuker.models.resource import ResourceState, ResourceType
from nuker.scanners.eks_cluster import EKSClusterScanner
from nuker.scanners.es_domain import ESDomainScanner, account_from_arn, domain_state
from nuker.scanners.rds_cluster import RDSClusterScanner
from tests.fixtures.resources import called_operations, client_error, create_mock_context, create_resource

CREATED = datetime(2025, 2, 1, tzinfo=timezone.utc)


def _aurora(cluster_id="orders", status="available", **extra):
    raw = {
        "DBClusterIdentifier": cluster_id,
        "Engine": "aurora-postgresql",
        "Status": status,
        "ClusterCreateTime": CREATED,
        "DBClusterMembers": [
            {"DBInstanceIdentifier": f"{cluster_id}-1"},
            {"DBInstanceIdentifier": f"{cluster_id}-2"},
        ],
        "VpcSecurityGroups": [{"VpcSecurityGroupId": "sg-db"}],
        "TagList": [{"Key": "Team", "Value": "payments"}],
    }
    raw.update(extra)
    return raw


class TestRDSClusterScanner:
    """Test suite for RDSClusterScanner."""

    def test_scan_collects_member_classes(self) -> None:
        """Test Aurora clusters report the classes of their members."""
        context = create_mock_context(
            pages={
                "describe_db_clusters": [
                    {
                        "DBClusters": [
                            _aurora(),
                            {"DBClusterIdentifier": "docs", "Engine": "docdb", "Status": "available"},
                        ]
                    }
                ],
                "describe_db_instances": [
                    {
                        "DBInstances": [
                            {"DBInstanceIdentifier": "orders-1", "DBInstanceClass": "db.r6g.large"},
                            {"DBInstanceIdentifier": "orders-2", "DBInstanceClass": "db.r6g.xlarge"},
                        ]
                    }
                ],
            }
        )

        [cluster] = RDSClusterScanner(context, "us-east-1").scan()

        assert cluster.id == "orders"
        assert cluster.state is ResourceState.AVAILABLE
        assert cluster.tags == {"Team": "payments"}
        assert cluster.attributes["instance_types"] == ("db.r6g.large", "db.r6g.xlarge")
        assert cluster.attributes["members"] == ("orders-1", "orders-2")
        assert cluster.attributes["references"] == ((ResourceType.EC2_SECURITY_GROUP, "sg-db"),)

    def test_approved_types_checks_every_member(self) -> None:
        """Test a cluster with one unapproved member class violates the allow-list."""
        rule = ApprovedTypes(types=frozenset({"db.r6g.large"}))
        cluster = create_resource(
            "orders", ResourceType.RDS_CLUSTER, instance_types=("db.r6g.large", "db.r6g.xlarge")
        )

        assert rule.unapproved(cluster) == ["db.r6g.xlarge"]

    def test_stopped_cluster_gets_stop_time(self) -> None:
        """Test cluster stop events become stopped_at."""
        stopped = datetime(2025, 5, 20, tzinfo=timezone.utc)
        context = create_mock_context(
            responses={"describe_events": {"Events": [{"Message": "DB cluster stopped", "Date": stopped}]}},
            pages={"describe_db_clusters": [{"DBClusters": [_aurora(status="stopped")]}]},
        )

        [cluster] = RDSClusterScanner(context, "us-east-1").scan()

        assert cluster.state is ResourceState.STOPPED
        assert cluster.attributes["stopped_at"] == stopped
        assert context.call.call_args.kwargs["SourceType"] == "db-cluster"

    def test_event_error_keeps_cluster(self) -> None:
        """Test a cluster whose events cannot be read is still listed."""
        context = create_mock_context(
            responses={"describe_events": client_error("AccessDenied")},
            pages={"describe_db_clusters": [{"DBClusters": [_aurora(status="stopped")]}]},
        )

        [cluster] = RDSClusterScanner(context, "us-east-1").scan()

        assert cluster.attributes["stopped_at"] is None

    def test_delete_removes_members_first(self) -> None:
        """Test members are deleted before the cluster, after lifting protection."""
        context = create_mock_context()
        policy = Policy(resource_type=ResourceType.RDS_CLUSTER, ignore_termination_protection=True)
        cluster = create_resource(
            "orders", ResourceType.RDS_CLUSTER, members=("orders-1", "orders-2"), deletion_protection=True
        )

        RDSClusterScanner(context, "us-east-1").delete(cluster, policy)

        assert called_operations(context) == [
            "modify_db_cluster",
            "delete_db_instance",
            "delete_db_instance",
            "delete_db_cluster",
        ]
        assert context.call.call_args.kwargs == {"DBClusterIdentifier": "orders", "SkipFinalSnapshot": True}

    def test_stop(self) -> None:
        """Test stopping a cluster."""
        context = create_mock_context()

        RDSClusterScanner(context, "us-east-1").stop(create_resource("orders", ResourceType.RDS_CLUSTER))

        assert RDSClusterScanner.can_stop is True
        context.call.assert_called_once_with("rds", "us-east-1", "stop_db_cluster", DBClusterIdentifier="orders")


def _domain(name, **extra):
    raw = {
        "DomainName": name,
        "ARN": f"arn:aws:es:us-east-1:123456789012:domain/{name}",
        "Created": True,
        "Deleted": False,
        "ElasticsearchVersion": "7.10",
        "ElasticsearchClusterConfig": {
            "InstanceType": "r5.large.elasticsearch",
            "InstanceCount": 3,
            "DedicatedMasterEnabled": True,
            "DedicatedMasterType": "m5.large.elasticsearch",
        },
        "VPCOptions": {"SecurityGroupIds": ["sg-es"]},
    }
    raw.update(extra)
    return raw


class TestESDomainScanner:
    """Test suite for ESDomainScanner."""

    def test_domain_state(self) -> None:
        """Test domain flags map to states."""
        assert domain_state({"Created": True}) is ResourceState.RUNNING
        assert domain_state({"Created": False}) is ResourceState.PENDING
        assert domain_state({"Created": True, "Processing": True}) is ResourceState.PENDING
        assert domain_state({"Created": True, "Deleted": True}) is ResourceState.DELETING

    def test_account_from_arn(self) -> None:
        """Test the account id is read from the domain ARN."""
        assert account_from_arn("arn:aws:es:us-east-1:123456789012:domain/logs") == "123456789012"
        assert account_from_arn(None) is None

    def test_scan(self) -> None:
        """Test domains are described in batches with their tags and creation time."""
        names = [f"d{i}" for i in range(7)]
        context = create_mock_context(
            responses={
                "list_domain_names": {"DomainNames": [{"DomainName": n} for n in names]},
                "describe_elasticsearch_domains": lambda DomainNames: {
                    "DomainStatusList": [_domain(n) for n in DomainNames]
                },
                "list_tags": {"TagList": [{"Key": "Owner", "Value": "search"}]},
                "describe_elasticsearch_domain_config": {
                    "DomainConfig": {"ElasticsearchClusterConfig": {"Status": {"CreationDate": CREATED}}}
                },
            }
        )

        resources = ESDomainScanner(context, "us-east-1").scan()

        assert [r.id for r in resources] == names
        batches = [
            c.kwargs["DomainNames"]
            for c in context.call.call_args_list
            if c.args[2] == "describe_elasticsearch_domains"
        ]
        assert [len(b) for b in batches] == [5, 2]
        domain = resources[0]
        assert domain.tags == {"Owner": "search"}
        assert domain.created_at == CREATED
        assert domain.state is ResourceState.RUNNING
        assert domain.attributes["instance_types"] == ("m5.large.elasticsearch", "r5.large.elasticsearch")
        assert domain.attributes["references"] == ((ResourceType.EC2_SECURITY_GROUP, "sg-es"),)

    def test_domain_error_skips_domain(self) -> None:
        """Test a domain whose tags cannot be read is skipped, not the whole scan."""

        def list_tags(ARN):
            if ARN.endswith("/locked"):
                raise client_error("AccessDeniedException")
            return {"TagList": []}

        context = create_mock_context(
            responses={
                "list_domain_names": {"DomainNames": [{"DomainName": "locked"}, {"DomainName": "open"}]},
                "describe_elasticsearch_domains": lambda DomainNames: {
                    "DomainStatusList": [_domain(n) for n in DomainNames]
                },
                "list_tags": list_tags,
                "describe_elasticsearch_domain_config": {"DomainConfig": {}},
            }
        )

        resources = ESDomainScanner(context, "us-east-1").scan()

        assert [r.id for r in resources] == ["open"]

    def test_metric_dimensions(self) -> None:
        """Test metrics are addressed by domain name and account."""
        scanner = ESDomainScanner(create_mock_context(), "us-east-1")
        domain = scanner.to_resource(_domain("logs"))

        assert scanner.metric_dimensions(domain) == [
            {"Name": "DomainName", "Value": "logs"},
            {"Name": "ClientId", "Value": "123456789012"},
        ]

    def test_delete(self) -> None:
        """Test deletion parameters."""
        context = create_mock_context()

        ESDomainScanner(context, "us-east-1").delete(create_resource("logs", ResourceType.ES_DOMAIN))

        context.call.assert_called_once_with("es", "us-east-1", "delete_elasticsearch_domain", DomainName="logs")


class TestEKSClusterScanner:
    """Test suite for EKSClusterScanner."""

    def test_scan(self) -> None:
        """Test clusters are described with node group instance types."""
        context = create_mock_context(
            responses={
                "describe_cluster": lambda name: {
                    "cluster": {
                        "name": name,
                        "status": "ACTIVE",
                        "createdAt": CREATED,
                        "tags": {"Owner": "platform"},
                        "resourcesVpcConfig": {"securityGroupIds": ["sg-extra"], "clusterSecurityGroupId": "sg-eks"},
                    }
                },
                "describe_nodegroup": lambda clusterName, nodegroupName: {
                    "nodegroup": {"instanceTypes": ["m5.large"] if nodegroupName == "general" else ["g4dn.xlarge"]}
                },
            },
            pages={
                "list_clusters": [{"clusters": ["apps"]}],
                "list_nodegroups": [{"nodegroups": ["general", "gpu"]}],
            },
        )

        [cluster] = EKSClusterScanner(context, "us-east-1").scan()

        assert cluster.id == "apps"
        assert cluster.state is ResourceState.RUNNING
        assert cluster.tags == {"Owner": "platform"}
        assert cluster.attributes["instance_types"] == ("g4dn.xlarge", "m5.large")
        assert set(cluster.attributes["references"]) == {
            (ResourceType.EC2_SECURITY_GROUP, "sg-extra"),
            (ResourceType.EC2_SECURITY_GROUP, "sg-eks"),
        }

    def test_cluster_gone_during_scan_skipped(self) -> None:
        """Test a cluster deleted between listing and describing is skipped."""

        def describe_cluster(name):
            if name == "gone":
                raise client_error("ResourceNotFoundException")
            return {"cluster": {"name": name, "status": "ACTIVE"}}

        context = create_mock_context(
            responses={"describe_cluster": describe_cluster},
            pages={"list_clusters": [{"clusters": ["apps", "gone", "data"]}]},
        )

        resources = EKSClusterScanner(context, "us-east-1").scan()

        assert [r.id for r in resources] == ["apps", "data"]

    def test_delete_removes_node_groups_and_profiles_first(self) -> None:
        """Test node groups and Fargate profiles are deleted and awaited before the cluster."""
        context = create_mock_context(
            pages={
                "list_nodegroups": [{"nodegroups": ["general"]}],
                "list_fargate_profiles": [{"fargateProfileNames": ["default"]}],
            }
        )
        client = MagicMock()
        context.client.return_value = client

        EKSClusterScanner(context, "us-east-1").delete(create_resource("apps", ResourceType.EKS_CLUSTER))

        assert called_operations(context) == ["delete_nodegroup", "delete_fargate_profile", "delete_cluster"]
        assert client.get_waiter.call_args_list == [call("nodegroup_deleted"), call("fargate_profile_deleted")]
        assert client.get_waiter.return_value.wait.call_args_list == [
            call(clusterName="apps", nodegroupName="general"),
            call(clusterName="apps", fargateProfileName="default"),
        ]
