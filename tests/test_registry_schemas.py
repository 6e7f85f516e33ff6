"""Tests for registry and GitHub payload normalization."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from mirrorgate.schemas.github import WorkflowRun
from mirrorgate.schemas.registry import DependencySpec, VersionManifest


def manifest(**fields) -> VersionManifest:
    return VersionManifest.model_validate({"name": "pkg", "version": "1.0.0", **fields})


class TestLicenseShapes:
    def test_string(self):
        assert manifest(license="MIT").license == "MIT"

    def test_object(self):
        assert manifest(license={"type": "ISC", "url": "https://x"}).license == "ISC"

    def test_legacy_list_single(self):
        assert manifest(licenses=[{"type": "BSD-3-Clause"}]).license == "BSD-3-Clause"

    def test_legacy_list_multiple_becomes_or(self):
        result = manifest(licenses=[{"type": "MIT"}, {"type": "Apache-2.0"}])
        assert result.license == "(MIT OR Apache-2.0)"

    def test_license_wins_over_legacy(self):
        assert manifest(license="MIT", licenses=[{"type": "GPL-3.0"}]).license == "MIT"

    @pytest.mark.parametrize("value", [None, "", "   ", 42, []])
    def test_missing_or_unusable(self, value):
        assert manifest(license=value).license is None

    def test_absent(self):
        assert manifest().license is None


class TestDependencyShapes:
    def test_object_keeps_order(self):
        result = manifest(dependencies={"b": "^1.0.0", "a": "~2.0.0"})
        assert result.dependencies == [
            DependencySpec(name="b", spec="^1.0.0"),
            DependencySpec(name="a", spec="~2.0.0"),
        ]

    def test_empty_spec_means_any(self):
        assert manifest(dependencies={"a": ""}).dependencies[0].spec == "*"

    def test_list_of_objects(self):
        result = manifest(dependencies=[{"name": "a", "version": "1.x"}, {"name": "b"}])
        assert [str(d) for d in result.dependencies] == ["a@1.x", "b@*"]

    def test_list_of_strings(self):
        result = manifest(dependencies=["a@^1.0.0", "@types/node@20", "c"])
        assert [str(d) for d in result.dependencies] == ["a@^1.0.0", "@types/node@20", "c@*"]

    def test_null(self):
        assert manifest(dependencies=None).dependencies == []

    @pytest.mark.parametrize("value", ["a@1", 7, [42], {"a": 1}])
    def test_unrecognized_rejected(self, value):
        with pytest.raises(ValidationError):
            manifest(dependencies=value)


class TestEnginesShapes:
    def test_object(self):
        assert manifest(engines={"node": ">=14 "}).engines == {"node": ">=14"}

    def test_legacy_list(self):
        assert manifest(engines=["node >= 0.8", "npm"]).engines == {"node": ">= 0.8", "npm": "*"}

    def test_odd_shape_dropped(self):
        assert manifest(engines="node").engines == {}

    def test_non_string_values_dropped(self):
        assert manifest(engines={"node": 14, "npm": ">=6"}).engines == {"npm": ">=6"}


class TestWorkflowRun:
    def test_from_api_payload(self):
        run = WorkflowRun.model_validate(
            {
                "id": 7,
                "status": "completed",
                "conclusion": "success",
                "created_at": "2024-05-01T12:00:00Z",
                "html_url": "https://github.com/acme/mirror/actions/runs/7",
                "display_title": "cache left-pad@latest",
                "head_sha": "abc",
            }
        )
        assert run.url == "https://github.com/acme/mirror/actions/runs/7"
        assert run.is_completed
        assert run.is_success

    def test_completed_failure_is_not_success(self):
        run = WorkflowRun.model_validate(
            {
                "id": 1,
                "status": "completed",
                "conclusion": "failure",
                "created_at": "2024-05-01T12:00:00Z",
            }
        )
        assert run.is_completed
        assert not run.is_success

    def test_in_progress(self):
        run = WorkflowRun.model_validate(
            {"id": 1, "status": "in_progress", "created_at": "2024-05-01T12:00:00Z"}
        )
        assert not run.is_completed
        assert not run.is_success
