"""End-to-end integration tests — full distribution runs against fake hosts.

These tests exercise the DistributionPipeline, preparation, FanOut,
RetryPolicy, HostTransfer and BaseEndpoint hook runner working together,
starting from a YAML configuration file.
"""

from __future__ import annotations

from dockship.config import load_config
from dockship.core.pipeline import DistributionPipeline
from dockship.core.preparation import prepare_artifact
from dockship.core.transfer import HostTransfer
from dockship.models.artifacts import ArtifactSpec
from dockship.models.transfer import TransferState

TWO_BY_THREE = """\
images:
  - registry.local/api:2.1
  - registry.local/web:2.1
target_hosts:
  - host-1
  - host-2
  - host-3
ssh:
  user: deploy
  pwd: secret
remote_storage:
  temp_dir: /var/tmp/dockship
transfer:
  concurrent: 2
  retry: 3
  retry_delay: 0
hooks:
  pre_load:
    - df -h /var/lib/docker
  post_load:
    - docker image prune -f
"""


class TestFullDistribution:
    def test_transient_host_failure_recovered(
        self, write_config, store, cluster, backoff, progress
    ):
        config = load_config(write_config(TWO_BY_THREE))
        # host-2 drops its first upload of every image
        cluster.upload_failures["host-2"] = 1

        report = DistributionPipeline(
            config,
            artifact_store=store,
            endpoint_factory=cluster.factory,
            progress=progress,
            backoff=backoff,
        ).start()

        assert [a.artifact for a in report.artifacts] == [
            "registry.local/api:2.1",
            "registry.local/web:2.1",
        ]
        for artifact in report.artifacts:
            assert artifact.success_count == 3
            assert artifact.failed_count == 0
            assert artifact.result_for("host-2").attempts == 2
            assert artifact.result_for("host-1").attempts == 1
            assert artifact.result_for("host-3").attempts == 1
            assert artifact.peak_concurrency <= 2
        assert report.all_succeeded

        # One export per image, removed once afterwards
        assert store.count("save") == 2
        assert store.count("cleanup") == 2
        # Every host loaded every image and cleaned it up remotely
        assert len(cluster.loads) == 6
        assert len(cluster.removed) == 6
        assert all(path.startswith("/var/tmp/dockship/") for _, path in cluster.removed)
        # Hooks ran on every successful attempt
        for host in ("host-1", "host-2", "host-3"):
            commands = cluster.commands_for(host)
            assert commands.count("df -h /var/lib/docker") == 2
            assert commands.count("docker image prune -f") == 2
        assert sorted(backoff.waits) == [1, 1]
        # Two failed bars for host-2, everything else finished cleanly
        assert list(progress.finished.values()).count(False) == 2

    def test_preparation_failure_does_not_block_others(
        self, write_config, store, cluster, backoff
    ):
        text = TWO_BY_THREE.replace(
            "  - registry.local/web:2.1\n", "  - registry.local/web:2.1\n  - x\n"
        )
        config = load_config(write_config(text))
        store.fail_pull.add("x")

        report = DistributionPipeline(
            config, artifact_store=store, endpoint_factory=cluster.factory, backoff=backoff
        ).start()

        x = report.for_artifact("x")
        assert x.prepared is False
        assert x.attempted_hosts == 0
        assert x.preparation_error
        assert report.for_artifact("registry.local/api:2.1").success_count == 3
        assert report.for_artifact("registry.local/web:2.1").success_count == 3
        assert report.total_success == 6
        assert report.total_failed == 0
        assert not any(path.endswith("/x.tar") for _, path in cluster.uploads)

    def test_unreachable_host_reported_after_retries(
        self, write_config, store, cluster, backoff
    ):
        config = load_config(write_config(TWO_BY_THREE))
        cluster.connect_failures["host-3"] = 99

        report = DistributionPipeline(
            config, artifact_store=store, endpoint_factory=cluster.factory, backoff=backoff
        ).start()

        for artifact in report.artifacts:
            assert artifact.succeeded_hosts == ["host-1", "host-2"]
            failed = artifact.result_for("host-3")
            assert failed.attempts == 3
            assert failed.error_type == "ConnectError"
        # Three attempts per image, each with a fresh session
        assert cluster.connects.count("host-3") == 6
        assert report.all_succeeded is False

    def test_failed_attempt_records_state(self, write_config, store, cluster):
        config = load_config(write_config(TWO_BY_THREE))
        cluster.load_failures["host-1"] = 1
        artifact = prepare_artifact(store, ArtifactSpec(name="registry.local/api:2.1"))

        attempt = HostTransfer(config, cluster.factory).attempt(config.hosts()[0], artifact, 1)
        assert attempt.failed_state == TransferState.LOADING
        assert attempt.final_state == TransferState.FAILED
        # pre_load hooks ran before the failing load
        assert [h.stage for h in attempt.hooks] == ["pre_load"]
