"""Tests for the GCP provider adapter."""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from cloudsweep.errors import DiscoveryError, ProviderUnavailableError
from cloudsweep.models.resource import ResourceFilter, ResourceKind
from cloudsweep.providers.gcp import GCPAdapter, location_of, member_principal, short_name
from cloudsweep.providers.runner import CommandRunner

NETWORK_LINK = "https://www.googleapis.com/compute/v1/projects/test-project/global/networks/dspm-net"


def make_adapter(responses):
    """Adapter whose runner answers run_json by matching the gcloud argv prefix."""
    runner = Mock(spec=CommandRunner)

    def run_json(argv, kind=None, resource_id=None):
        for prefix, response in responses.items():
            if tuple(argv[1 : 1 + len(prefix)]) == prefix:
                if isinstance(response, Exception):
                    raise response
                return response
        return []

    runner.run_json.side_effect = run_json
    return GCPAdapter("test-project", runner=runner), runner


@pytest.fixture
def dspm_filter():
    return ResourceFilter(name_prefixes=("dspm-",))


class TestHelpers:
    """Test suite for gcloud document helpers."""

    def test_short_name(self) -> None:
        """Test last path segment."""
        assert short_name("projects/p/topics/dspm-events") == "dspm-events"
        assert short_name(NETWORK_LINK + "/") == "dspm-net"
        assert short_name(None) == ""

    def test_location_of(self) -> None:
        """Test region and zone normalization."""
        assert location_of({"region": "https://x/regions/us-central1"}) == "us-central1"
        assert location_of({"zone": "https://x/zones/us-central1-a"}) == "us-central1"
        assert location_of({"name": "projects/p/locations/europe-west1/functions/f"}) == "europe-west1"
        assert location_of({"location": "US"}) == "us"
        assert location_of({"name": "dspm-net"}) is None

    def test_member_principal(self) -> None:
        """Test member local part extraction."""
        assert member_principal("serviceAccount:dspm-sa@p.iam.gserviceaccount.com") == "dspm-sa"
        assert member_principal("user:alice@example.com") == "alice"
        assert member_principal("deleted:serviceAccount:dspm-sa@p.iam.gserviceaccount.com?uid=123") == "dspm-sa"


class TestGCPAdapterDiscovery:
    """Test suite for GCP resource listing."""

    def test_check_access_requires_active_account(self) -> None:
        """Test missing active account raises ProviderUnavailableError."""
        adapter, _ = make_adapter({("auth", "list"): []})

        with pytest.raises(ProviderUnavailableError):
            adapter.check_access()

    def test_list_topics_matches_prefix(self, dspm_filter) -> None:
        """Test listing keeps only matching resources."""
        adapter, runner = make_adapter(
            {
                ("pubsub", "topics", "list"): [
                    {"name": "projects/test-project/topics/dspm-events"},
                    {"name": "projects/test-project/topics/prod-events"},
                ]
            }
        )

        resources = adapter.list_resources(ResourceKind.PUBSUB_TOPIC, dspm_filter)

        assert [r.display_name for r in resources] == ["dspm-events"]
        assert resources[0].id == "projects/test-project/topics/dspm-events"
        argv = runner.run_json.call_args.args[0]
        assert "--format=json" in argv
        assert "--project=test-project" in argv

    def test_label_selector_matches_labeled_kind(self) -> None:
        """Test label selector applies to labeled kinds."""
        adapter, _ = make_adapter(
            {
                ("storage", "buckets", "list"): [
                    {"name": "data-1", "labels": {"app": "dspm"}},
                    {"name": "data-2", "labels": {"app": "other"}},
                ]
            }
        )

        resources = adapter.list_resources(ResourceKind.STORAGE_BUCKET, ResourceFilter(label_selector={"app": "dspm"}))

        assert [r.id for r in resources] == ["gs://data-1"]

    def test_subnet_depends_on_network(self, dspm_filter) -> None:
        """Test subnets reference their network self link."""
        adapter, _ = make_adapter(
            {
                ("compute", "networks", "subnets", "list"): [
                    {
                        "name": "dspm-subnet",
                        "selfLink": "https://x/regions/us-central1/subnetworks/dspm-subnet",
                        "region": "https://x/regions/us-central1",
                        "network": NETWORK_LINK,
                    }
                ]
            }
        )

        [subnet] = adapter.list_resources(ResourceKind.SUBNET, dspm_filter)

        assert subnet.region == "us-central1"
        assert subnet.metadata["depends_on"] == [("gcp", "compute_network", NETWORK_LINK)]

    def test_service_account_identity(self, dspm_filter) -> None:
        """Test service accounts are keyed by email."""
        adapter, _ = make_adapter(
            {("iam", "service-accounts", "list"): [{"email": "dspm-sa@test-project.iam.gserviceaccount.com"}]}
        )

        [account] = adapter.list_resources(ResourceKind.SERVICE_ACCOUNT, dspm_filter)

        assert account.id == "dspm-sa@test-project.iam.gserviceaccount.com"
        assert account.display_name == "dspm-sa"

    def test_project_bindings_for_matching_members(self, dspm_filter) -> None:
        """Test project bindings are materialized for matching principals only."""
        adapter, _ = make_adapter(
            {
                ("projects", "get-iam-policy"): {
                    "bindings": [
                        {
                            "role": "roles/pubsub.editor",
                            "members": [
                                "serviceAccount:dspm-sa@test-project.iam.gserviceaccount.com",
                                "user:alice@example.com",
                            ],
                        }
                    ]
                }
            }
        )

        [binding] = adapter.list_resources(ResourceKind.IAM_ROLE_BINDING, dspm_filter)

        assert binding.metadata["role"] == "roles/pubsub.editor"
        assert binding.metadata["depends_on"] == [
            ("gcp", "service_account", "dspm-sa@test-project.iam.gserviceaccount.com")
        ]

    def test_project_bindings_of_deleted_accounts(self, dspm_filter) -> None:
        """Test bindings left behind by deleted prefixed service accounts are still removed."""
        orphan = "deleted:serviceAccount:dspm-sa@test-project.iam.gserviceaccount.com?uid=1234"
        adapter, _ = make_adapter(
            {("projects", "get-iam-policy"): {"bindings": [{"role": "roles/pubsub.editor", "members": [orphan]}]}}
        )

        [binding] = adapter.list_resources(ResourceKind.IAM_ROLE_BINDING, dspm_filter)

        assert binding.metadata["member"] == orphan
        assert binding.metadata["depends_on"] == []
        assert f"--member={orphan}" in adapter.delete_command(binding)

    def test_nats_listed_per_router(self, dspm_filter) -> None:
        """Test NATs are enumerated from matching routers."""
        adapter, _ = make_adapter(
            {
                ("compute", "routers", "nats", "list"): [{"name": "dspm-nat"}],
                ("compute", "routers", "list"): [
                    {"name": "dspm-router", "selfLink": "https://x/routers/dspm-router", "region": "us-central1"}
                ],
            }
        )

        [nat] = adapter.list_resources(ResourceKind.NAT, dspm_filter)

        assert nat.metadata["router"] == "dspm-router"
        assert nat.metadata["depends_on"] == [("gcp", "router", "https://x/routers/dspm-router")]

    def test_resource_iam_bindings(self, dspm_filter) -> None:
        """Test bucket IAM policy is expanded into bindings."""
        adapter, _ = make_adapter(
            {
                ("storage", "buckets", "list"): [{"name": "dspm-data"}],
                ("storage", "buckets", "get-iam-policy"): {
                    "bindings": [{"role": "roles/storage.admin", "members": ["serviceAccount:a@x", "group:g@x"]}]
                },
            }
        )
        [bucket] = adapter.list_resources(ResourceKind.STORAGE_BUCKET, dspm_filter)

        bindings = adapter.list_iam_bindings(bucket)

        assert [(b.role, b.member) for b in bindings] == [
            ("roles/storage.admin", "serviceAccount:a@x"),
            ("roles/storage.admin", "group:g@x"),
        ]

    def test_enabled_services(self) -> None:
        """Test enabled service names are short names."""
        adapter, _ = make_adapter(
            {("services", "list"): [{"config": {"name": "run.googleapis.com"}}, {"name": "projects/1/services/iam.googleapis.com"}]}
        )

        assert adapter.enabled_services() == ["run.googleapis.com", "iam.googleapis.com"]

    def test_routers_listed_once_per_discovery(self, dspm_filter) -> None:
        """Test NAT enumeration reuses the router listing of the same pass."""
        adapter, runner = make_adapter(
            {
                ("compute", "routers", "nats", "list"): [{"name": "dspm-nat"}],
                ("compute", "routers", "list"): [
                    {"name": "dspm-router", "selfLink": "https://x/routers/dspm-router", "region": "us-central1"}
                ],
            }
        )

        def router_listings():
            return sum(1 for c in runner.run_json.call_args_list if c.args[0][1:4] == ["compute", "routers", "list"])

        adapter.begin_discovery()
        adapter.list_resources(ResourceKind.NAT, dspm_filter)
        [router] = adapter.list_resources(ResourceKind.ROUTER, dspm_filter)
        assert router.display_name == "dspm-router"
        assert router_listings() == 1

        adapter.begin_discovery()
        adapter.list_resources(ResourceKind.ROUTER, dspm_filter)
        assert router_listings() == 2

    def test_monitoring_resources(self, dspm_filter) -> None:
        """Test alert policies and channels are matched by display name and ordered policy first."""
        channel_name = "projects/test-project/notificationChannels/987"
        adapter, _ = make_adapter(
            {
                ("alpha", "monitoring", "policies", "list"): [
                    {
                        "name": "projects/test-project/alertPolicies/123",
                        "displayName": "dspm-scan-failures",
                        "notificationChannels": [channel_name],
                    },
                    {"name": "projects/test-project/alertPolicies/456", "displayName": "Uptime"},
                ],
                ("alpha", "monitoring", "channels", "list"): [{"name": channel_name, "displayName": "dspm-oncall"}],
                ("monitoring", "dashboards", "list"): [
                    {"name": "projects/1/dashboards/abc", "displayName": "dspm-overview"}
                ],
            }
        )

        [policy] = adapter.list_resources(ResourceKind.ALERT_POLICY, dspm_filter)
        [channel] = adapter.list_resources(ResourceKind.NOTIFICATION_CHANNEL, dspm_filter)
        [dashboard] = adapter.list_resources(ResourceKind.DASHBOARD, dspm_filter)

        assert policy.display_name == "dspm-scan-failures"
        assert policy.metadata["depends_on"] == [("gcp", "notification_channel", channel_name)]
        assert ResourceKind.ALERT_POLICY.rank > ResourceKind.NOTIFICATION_CHANNEL.rank
        assert adapter.delete_command(policy)[:6] == [
            "gcloud", "alpha", "monitoring", "policies", "delete", "projects/test-project/alertPolicies/123",
        ]
        assert adapter.delete_command(channel)[5] == channel_name
        assert adapter.delete_command(dashboard)[:5] == [
            "gcloud", "monitoring", "dashboards", "delete", "projects/1/dashboards/abc",
        ]

    def test_only_custom_metric_descriptors(self, dspm_filter) -> None:
        """Test built-in metric descriptors are never candidates."""
        adapter, _ = make_adapter(
            {
                ("monitoring", "metrics-descriptors", "list"): [
                    {
                        "name": "projects/test-project/metricDescriptors/logging.googleapis.com/user/dspm-scan-errors",
                        "type": "logging.googleapis.com/user/dspm-scan-errors",
                    },
                    {"name": "projects/test-project/metricDescriptors/x", "type": "compute.googleapis.com/dspm-lookalike"},
                ]
            }
        )

        [metric] = adapter.list_resources(ResourceKind.METRIC_DESCRIPTOR, dspm_filter)

        assert metric.display_name == "dspm-scan-errors"
        assert adapter.delete_command(metric)[:5] == [
            "gcloud", "monitoring", "metrics-descriptors", "delete", "logging.googleapis.com/user/dspm-scan-errors",
        ]

    def test_snapshots(self, dspm_filter) -> None:
        """Test disk snapshots are global and deleted by name."""
        adapter, _ = make_adapter(
            {("compute", "snapshots", "list"): [{"name": "dspm-disk-snap", "selfLink": "https://x/global/snapshots/dspm-disk-snap"}]}
        )

        [snapshot] = adapter.list_resources(ResourceKind.SNAPSHOT, dspm_filter)

        assert snapshot.region is None
        assert ResourceKind.DISK.rank > ResourceKind.SNAPSHOT.rank > ResourceKind.STORAGE_BUCKET.rank
        assert adapter.delete_command(snapshot) == [
            "gcloud", "compute", "snapshots", "delete", "dspm-disk-snap", "--project=test-project", "--quiet",
        ]

    def test_label_search_through_asset_inventory(self) -> None:
        """Test labeled resources found by Cloud Asset search match even when the listing omits labels."""
        adapter, runner = make_adapter(
            {
                ("asset", "search-all-resources"): [
                    {"name": "//pubsub.googleapis.com/projects/test-project/topics/scan-events", "assetType": "pubsub.googleapis.com/Topic"},
                    {"name": "//storage.googleapis.com/scan-events", "assetType": "storage.googleapis.com/Bucket"},
                ],
                ("pubsub", "topics", "list"): [
                    {"name": "projects/test-project/topics/scan-events"},
                    {"name": "projects/test-project/topics/other-events"},
                ],
            }
        )
        label_filter = ResourceFilter(label_selector={"trend-micro-product": "dspm"}, regions=("us-central1",))

        topics = adapter.list_resources(ResourceKind.PUBSUB_TOPIC, label_filter)
        adapter.list_resources(ResourceKind.PUBSUB_SUBSCRIPTION, label_filter)

        assert [t.display_name for t in topics] == ["scan-events"]
        searches = [c.args[0] for c in runner.run_json.call_args_list if c.args[0][1] == "asset"]
        assert len(searches) == 1
        assert "--query=labels.trend-micro-product=dspm AND location=us-central1" in searches[0]

    def test_label_search_failure_falls_back_to_listed_labels(self) -> None:
        """Test an unavailable Cloud Asset API leaves matching to listing labels."""
        adapter, _ = make_adapter(
            {
                ("asset", "search-all-resources"): DiscoveryError("cloudasset.googleapis.com is not enabled"),
                ("storage", "buckets", "list"): [
                    {"name": "data-1", "labels": {"app": "dspm"}},
                    {"name": "data-2"},
                ],
            }
        )

        resources = adapter.list_resources(ResourceKind.STORAGE_BUCKET, ResourceFilter(label_selector={"app": "dspm"}))

        assert [r.id for r in resources] == ["gs://data-1"]

    def test_prefix_filter_skips_asset_search(self, dspm_filter) -> None:
        """Test the asset index is only searched for label selectors."""
        adapter, runner = make_adapter({("pubsub", "topics", "list"): [{"name": "projects/test-project/topics/dspm-events"}]})

        adapter.list_resources(ResourceKind.PUBSUB_TOPIC, dspm_filter)

        assert all(c.args[0][1] != "asset" for c in runner.run_json.call_args_list)


class TestGCPAdapterDeletion:
    """Test suite for gcloud delete commands."""

    def test_regional_delete_command(self, dspm_filter) -> None:
        """Test a regional resource passes its region flag."""
        adapter, _ = make_adapter(
            {
                ("compute", "networks", "subnets", "list"): [
                    {"name": "dspm-subnet", "region": "https://x/regions/us-central1", "network": NETWORK_LINK}
                ]
            }
        )
        [subnet] = adapter.list_resources(ResourceKind.SUBNET, dspm_filter)

        assert adapter.delete_command(subnet) == [
            "gcloud", "compute", "networks", "subnets", "delete", "dspm-subnet",
            "--region=us-central1", "--project=test-project", "--quiet",
        ]

    def test_bucket_delete_removes_contents(self, dspm_filter) -> None:
        """Test buckets are deleted recursively."""
        adapter, _ = make_adapter({("storage", "buckets", "list"): [{"name": "dspm-data"}]})
        [bucket] = adapter.list_resources(ResourceKind.STORAGE_BUCKET, dspm_filter)

        assert adapter.delete_command(bucket)[:5] == ["gcloud", "storage", "rm", "-r", "gs://dspm-data"]

    def test_project_binding_delete_command(self, dspm_filter) -> None:
        """Test removing a project-level binding."""
        adapter, _ = make_adapter(
            {
                ("projects", "get-iam-policy"): {
                    "bindings": [{"role": "roles/viewer", "members": ["serviceAccount:dspm-sa@p.iam.gserviceaccount.com"]}]
                }
            }
        )
        [binding] = adapter.list_resources(ResourceKind.IAM_ROLE_BINDING, dspm_filter)

        argv = adapter.delete_command(binding)

        assert argv[:4] == ["gcloud", "projects", "remove-iam-policy-binding", "test-project"]
        assert "--member=serviceAccount:dspm-sa@p.iam.gserviceaccount.com" in argv
        assert "--role=roles/viewer" in argv

    def test_delete_runs_command(self, dspm_filter) -> None:
        """Test delete passes error context to the runner."""
        adapter, runner = make_adapter({("pubsub", "topics", "list"): [{"name": "projects/test-project/topics/dspm-events"}]})
        [topic] = adapter.list_resources(ResourceKind.PUBSUB_TOPIC, dspm_filter)

        adapter.delete(topic)

        runner.run.assert_called_once_with(
            ["gcloud", "pubsub", "topics", "delete", "dspm-events", "--project=test-project", "--quiet"],
            kind="pubsub_topic",
            resource_id="projects/test-project/topics/dspm-events",
        )
        assert adapter.describe(topic).startswith("gcloud pubsub topics delete dspm-events")
