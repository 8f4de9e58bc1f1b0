"""Integration tests for the scan -> recommend -> feedback -> rescan lifecycle.

These tests run the real collector, builder, store and ranker against a
plugin tree laid out the way ~/.claude is, including overlapping scan
locations and an installed plugins registry.
"""

import shutil
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed

import pytest

from tool_advisor import ToolAdvisor
from tool_advisor.models import Tier

EXPECTED_IDS = {
    "release-tools:deploy",
    "release-tools:rollback",
    "release-tools:release-manager",
    "code-quality:code-reviewer",
    "code-quality:PostToolUse",
    "spreadsheet:spreadsheet",
}


@pytest.fixture
def advisor(claude_config):
    return ToolAdvisor.from_config(claude_config)


class TestLifecycle:
    """Full lifecycle over a realistic plugin tree."""

    def test_initial_scan(self, advisor, claude_home):
        index = advisor.scan()

        assert set(index.capabilities) == EXPECTED_IDS
        assert index.statistics.errors == []
        assert index.statistics.plugins_scanned == 3
        assert index.plugin_index["release-tools"].status == "installed"
        assert index.plugin_index["release-tools"].install_count == 1
        assert index.plugin_index["code-quality"].status == "discovered"
        assert index.plugin_index["spreadsheet"].status == "standalone"
        # Reachable from two locations, attributed to the first
        assert index.get("release-tools:deploy").location == str(
            claude_home / "plugins" / "marketplaces"
        )

    def test_recommend_and_learn(self, advisor):
        advisor.scan()
        query = "deploy the service to AWS production"

        before = advisor.recommend(query)
        advisor.record_feedback("release-tools:deploy", "accepted")
        after = advisor.recommend(query)

        assert before.candidates[0].capability.id == "release-tools:deploy"
        assert after.candidates[0].capability.id == "release-tools:deploy"
        assert after.candidates[0].score > before.candidates[0].score
        assert after.tier == Tier.SUGGEST_ONE

    def test_plugin_update_preserves_learning(self, advisor, claude_home):
        advisor.scan()
        advisor.record_feedback("release-tools:deploy", "accepted")
        advisor.record_feedback("release-tools:deploy", "completed", 0)
        deploy_md = (
            claude_home / "plugins" / "marketplaces" / "acme" / "release-tools" / "commands"
            / "deploy.md"
        )
        deploy_md.write_text("---\ndescription: Deploy the service to Google Cloud\n---\n")

        index = advisor.scan()

        capability = index.get("release-tools:deploy")
        assert capability.description == "Deploy the service to Google Cloud"
        assert "google" in capability.keywords
        assert "aws" not in capability.keywords
        assert capability.usage_count == 1
        assert capability.success_rate == pytest.approx(0.8)

    def test_removed_plugin_is_pruned(self, advisor, claude_home):
        advisor.scan()
        shutil.rmtree(claude_home / "plugins" / "marketplaces" / "acme" / "code-quality")

        index = advisor.scan()

        assert not any(cid.startswith("code-quality:") for cid in index.capabilities)
        assert "code-quality" not in index.plugin_index
        assert "review" not in index.keyword_index
        assert index.statistics.capabilities_removed == 2

    def test_broken_component_keeps_prior_entry(self, advisor, claude_home):
        advisor.scan()
        advisor.record_feedback("release-tools:rollback", "accepted")
        rollback_md = (
            claude_home / "plugins" / "marketplaces" / "acme" / "release-tools" / "commands"
            / "rollback.md"
        )
        rollback_md.write_text("---\ndescription: [unclosed\n---\n")

        index = advisor.scan()

        assert index.get("release-tools:rollback").usage_count == 1
        assert index.statistics.capabilities_retained == 1
        assert [e.path for e in index.statistics.errors] == [str(rollback_md)]

    def test_missing_location_keeps_prior_entries(self, advisor, claude_home):
        advisor.scan()
        shutil.rmtree(claude_home / "skills")

        index = advisor.scan()

        assert "spreadsheet:spreadsheet" in index.capabilities
        assert index.statistics.capabilities_removed == 0


class TestConcurrency:
    """Scans and feedback running at the same time never lose updates."""

    def test_feedback_during_rescans(self, advisor):
        advisor.scan()
        num_threads = 8
        accepts_per_thread = 5
        barrier = threading.Barrier(num_threads + 2)

        def accept_many() -> int:
            barrier.wait()
            for _ in range(accepts_per_thread):
                advisor.record_feedback("release-tools:deploy", "accepted")
            return accepts_per_thread

        def rescan() -> int:
            barrier.wait()
            advisor.scan()
            return 0

        with ThreadPoolExecutor(max_workers=num_threads + 2) as executor:
            futures = [executor.submit(accept_many) for _ in range(num_threads)]
            futures += [executor.submit(rescan) for _ in range(2)]
            total = sum(future.result() for future in as_completed(futures))

        assert total == num_threads * accepts_per_thread
        index = advisor.load_index()
        assert index.get("release-tools:deploy").usage_count == total
        assert set(index.capabilities) == EXPECTED_IDS
