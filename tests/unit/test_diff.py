"""Tests for the tag and distribution diff engines."""

from __future__ import annotations

from irsa_operator.utils.diff import (
    TagDiff,
    apply_tag_diff,
    distribution_needs_update,
    live_distribution_settings,
    merge_tags,
    tag_diff,
    tags_from_list,
    tags_to_list,
)


class TestTagDiff:
    """Test cases for tag_diff function."""

    def test_identical_tags(self):
        assert tag_diff({"a": "1"}, {"a": "1"}).empty

    def test_none_and_empty_are_equal(self):
        assert tag_diff(None, {}).empty
        assert tag_diff({}, None).empty

    def test_added_changed_and_removed(self):
        diff = tag_diff({"keep": "1", "change": "old", "z-gone": "x", "a-gone": "y"}, {"keep": "1", "change": "new", "add": "2"})

        assert diff.to_add == {"change": "new", "add": "2"}
        assert diff.to_remove == ["a-gone", "z-gone"]

    def test_keys_are_case_sensitive(self):
        diff = tag_diff({"Team": "a"}, {"team": "a"})

        assert diff.to_add == {"team": "a"}
        assert diff.to_remove == ["Team"]

    def test_applying_diff_converges(self):
        live = {"stale": "1", "giantswarm.io/cluster": "abc12", "team": "old"}
        desired = {"giantswarm.io/cluster": "abc12", "team": "new", "cost-center": "42"}

        converged = apply_tag_diff(live, tag_diff(live, desired))

        assert converged == desired
        assert tag_diff(converged, desired) == TagDiff()


class TestMergeTags:
    def test_first_occurrence_wins(self):
        internal = {"giantswarm.io/cluster": "abc12"}
        customer = {"giantswarm.io/cluster": "evil", "team": "rocket"}

        assert merge_tags(internal, customer) == {"giantswarm.io/cluster": "abc12", "team": "rocket"}

    def test_none_is_skipped(self):
        assert merge_tags(None, {"a": "1"}) == {"a": "1"}


def test_tag_list_conversion():
    items = tags_to_list({"a": "1", "b": ""})
    assert items == [{"Key": "a", "Value": "1"}, {"Key": "b", "Value": ""}]
    assert tags_from_list(items) == {"a": "1", "b": ""}
    assert tags_from_list(None) == {}


class TestDistributionNeedsUpdate:
    """Test cases for distribution_needs_update function."""

    def test_equal_settings(self):
        assert not distribution_needs_update(["irsa.example.com"], "arn:cert", ["irsa.example.com"], "arn:cert")

    def test_missing_and_empty_are_equal(self):
        assert not distribution_needs_update(None, None, [], "")

    def test_alias_order_matters(self):
        assert distribution_needs_update(["a", "b"], None, ["b", "a"], None)

    def test_certificate_change(self):
        assert distribution_needs_update(["a"], "arn:old", ["a"], "arn:new")

    def test_alias_added(self):
        assert distribution_needs_update([], None, ["irsa.example.com"], "arn:cert")


class TestLiveDistributionSettings:
    def test_extracts_aliases_and_certificate(self):
        config = {
            "Aliases": {"Quantity": 1, "Items": ["irsa.example.com"]},
            "ViewerCertificate": {"ACMCertificateArn": "arn:cert", "SSLSupportMethod": "sni-only"},
        }
        assert live_distribution_settings(config) == (["irsa.example.com"], "arn:cert")

    def test_default_certificate(self):
        config = {"Aliases": {"Quantity": 0}, "ViewerCertificate": {"CloudFrontDefaultCertificate": True}}
        assert live_distribution_settings(config) == ([], None)
