"""Tests for the release orchestrator."""
import json
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from release_uploader.errors import ConflictFailure, NetworkFailure
from release_uploader.models import ExhaustedRetries, ReleaseConfig, ReleaseState, UploadStatus
from release_uploader.orchestrator import ReleaseOrchestrator


def _config(**overrides):
    values = dict(
        organization="acme",
        project="web",
        api_key="secret",
        release="v1",
        base_url="https://x/api/0",
        retry_backoff=0,
    )
    values.update(overrides)
    return ReleaseConfig(**values)


def _fake_api(create_effect=None, upload_effect=None):
    api = Mock()
    api.create_release = AsyncMock(side_effect=create_effect)
    api.upload_file = AsyncMock(side_effect=upload_effect)
    return api


def _write_assets(root: Path, *names):
    assets = {}
    for name in names:
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"// {name}")
        assets[name] = path
    return assets


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "missing, message",
        [
            ("organization", "Must provide organization"),
            ("project", "Must provide project"),
            ("api_key", "Must provide api key"),
            ("release", "Must provide release version"),
        ],
    )
    async def test_missing_field_fails_before_any_request(self, missing, message, tmp_path):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(201, json={})

        config = _config(**{missing: None})
        async with ReleaseOrchestrator(config, transport=httpx.MockTransport(handler)) as orchestrator:
            result = await orchestrator.publish(tmp_path, assets={})

        assert len(calls) == 0
        assert result.state == ReleaseState.FAILED
        assert result.success is False
        assert len(result.errors) == 1
        assert message in result.errors[0]
        assert orchestrator.transitions == [
            (ReleaseState.IDLE, ReleaseState.VALIDATING_CONFIG),
            (ReleaseState.VALIDATING_CONFIG, ReleaseState.FAILED),
        ]

    @pytest.mark.asyncio
    async def test_suppress_errors_downgrades_config_error(self, tmp_path):
        api = _fake_api()
        config = _config(api_key=None, suppress_errors=True)
        async with ReleaseOrchestrator(config, api=api) as orchestrator:
            result = await orchestrator.publish(tmp_path, assets={})

        api.create_release.assert_not_awaited()
        assert result.state == ReleaseState.FAILED
        assert result.success is True
        assert "Must provide api key" in result.warnings[0]


class TestPublish:
    @pytest.mark.asyncio
    async def test_end_to_end_requests(self, tmp_path):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(201, json={})

        assets = _write_assets(tmp_path, "bundle.js")
        async with ReleaseOrchestrator(_config(), transport=httpx.MockTransport(handler)) as orchestrator:
            result = await orchestrator.publish(tmp_path, assets=assets)

        assert result.success is True
        assert result.state == ReleaseState.DONE
        assert result.version == "v1"
        assert len(requests) == 2

        create, upload = requests
        assert create.method == "POST"
        assert str(create.url) == "https://x/api/0/organizations/acme/releases/"
        assert json.loads(create.content) == {"version": "v1", "projects": ["web"]}

        assert upload.method == "POST"
        assert str(upload.url) == "https://x/api/0/organizations/acme/releases/v1/files/"
        assert b'name="name"\r\n\r\n~/bundle.js' in upload.content

    @pytest.mark.asyncio
    async def test_legacy_base_url_used_normalized(self, tmp_path):
        urls = []

        def handler(request):
            urls.append(str(request.url))
            return httpx.Response(201, json={})

        config = _config(base_url="https://x/api/0/projects")
        async with ReleaseOrchestrator(config, transport=httpx.MockTransport(handler)) as orchestrator:
            await orchestrator.publish(tmp_path, assets={})

        assert urls == ["https://x/api/0/organizations/acme/releases/"]

    @pytest.mark.asyncio
    async def test_release_created_before_any_upload(self, tmp_path):
        order = []
        api = _fake_api(
            create_effect=lambda descriptor: order.append("create"),
            upload_effect=lambda version, path, name: order.append(name),
        )
        assets = _write_assets(tmp_path, "a.js", "b.js", "c.js.map")

        async with ReleaseOrchestrator(_config(upload_concurrency=2), api=api) as orchestrator:
            result = await orchestrator.publish(tmp_path, assets=assets)

        assert order[0] == "create"
        assert sorted(order[1:]) == ["~/a.js", "~/b.js", "~/c.js.map"]
        assert result.uploaded_files == 3

    @pytest.mark.asyncio
    async def test_discovers_assets_and_applies_patterns(self, tmp_path):
        api = _fake_api()
        _write_assets(tmp_path, "main.js", "main.js.map", "style.css", "vendor/lib.js")

        config = _config(exclude=r"^vendor/")
        async with ReleaseOrchestrator(config, api=api) as orchestrator:
            result = await orchestrator.publish(tmp_path)

        uploaded = sorted(call.args[2] for call in api.upload_file.await_args_list)
        assert uploaded == ["~/main.js", "~/main.js.map"]
        assert result.uploaded_files == 2

    @pytest.mark.asyncio
    async def test_callable_release_receives_build_hash(self, tmp_path):
        api = _fake_api()
        config = _config(release=lambda build_hash: f"web@{build_hash}")
        async with ReleaseOrchestrator(config, api=api) as orchestrator:
            result = await orchestrator.publish(tmp_path, assets={}, build_hash="abc")

        descriptor = api.create_release.await_args.args[0]
        assert descriptor.version == "web@abc"
        assert descriptor.body == {"version": "web@abc", "projects": ["web"]}
        assert result.version == "web@abc"

    @pytest.mark.asyncio
    async def test_full_transition_sequence(self, tmp_path):
        api = _fake_api()
        async with ReleaseOrchestrator(_config(), api=api) as orchestrator:
            await orchestrator.publish(tmp_path, assets={})

        assert [new for _, new in orchestrator.transitions] == [
            ReleaseState.VALIDATING_CONFIG,
            ReleaseState.CREATING_RELEASE,
            ReleaseState.UPLOADING_FILES,
            ReleaseState.CLEANING_UP,
            ReleaseState.DONE,
        ]
        assert orchestrator.state == ReleaseState.DONE

    @pytest.mark.asyncio
    async def test_cannot_publish_twice(self, tmp_path):
        async with ReleaseOrchestrator(_config(), api=_fake_api()) as orchestrator:
            await orchestrator.publish(tmp_path, assets={})
            with pytest.raises(RuntimeError, match="already ran"):
                await orchestrator.publish(tmp_path, assets={})

    @pytest.mark.asyncio
    async def test_requires_context(self, tmp_path):
        orchestrator = ReleaseOrchestrator(_config(), api=_fake_api())
        with pytest.raises(RuntimeError, match="async with"):
            await orchestrator.publish(tmp_path, assets={})


class TestCreateReleaseFailure:
    @pytest.mark.asyncio
    async def test_failure_skips_uploads_and_reports_error(self, tmp_path):
        api = _fake_api(create_effect=NetworkFailure("API error 500", status_code=500))
        assets = _write_assets(tmp_path, "a.js")

        async with ReleaseOrchestrator(_config(), api=api) as orchestrator:
            result = await orchestrator.publish(tmp_path, assets=assets)

        api.upload_file.assert_not_awaited()
        assert result.state == ReleaseState.FAILED
        assert result.errors == ["Release upload: API error 500"]

    @pytest.mark.asyncio
    async def test_conflict_suppression_downgrades_to_warning(self, tmp_path):
        api = _fake_api(create_effect=ConflictFailure("release exists"))
        config = _config(suppress_conflict_error=True)

        async with ReleaseOrchestrator(config, api=api) as orchestrator:
            result = await orchestrator.publish(tmp_path, assets={})

        assert result.state == ReleaseState.FAILED
        assert result.success is True
        assert result.warnings == ["Release upload: release exists"]

    @pytest.mark.asyncio
    async def test_conflict_without_suppression_is_an_error(self, tmp_path):
        api = _fake_api(create_effect=ConflictFailure("release exists"))

        async with ReleaseOrchestrator(_config(), api=api) as orchestrator:
            result = await orchestrator.publish(tmp_path, assets={})

        assert result.success is False

    @pytest.mark.asyncio
    async def test_unencodable_api_key_fails_run(self, tmp_path):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(201, json={})

        config = _config(api_key="t\u00f6k\u20acn")
        async with ReleaseOrchestrator(config, transport=httpx.MockTransport(handler)) as orchestrator:
            result = await orchestrator.publish(tmp_path, assets={})

        assert calls == []
        assert result.state == ReleaseState.FAILED
        assert orchestrator.state == ReleaseState.FAILED
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Release upload: Could not")


class TestUploadFailures:
    @pytest.mark.asyncio
    async def test_exhausted_retries_suppressed_by_default(self, tmp_path):
        api = _fake_api(upload_effect=NetworkFailure("boom", status_code=500))
        assets = _write_assets(tmp_path, "a.js")

        async with ReleaseOrchestrator(_config(), api=api) as orchestrator:
            result = await orchestrator.publish(tmp_path, assets=assets)

        assert api.upload_file.await_count == 3
        assert result.state == ReleaseState.DONE
        assert result.success is True
        assert result.failed_files == 1
        assert "gave up on ~/a.js after 3 attempts" in result.warnings[0]

    @pytest.mark.asyncio
    async def test_exhausted_retries_can_propagate(self, tmp_path):
        api = _fake_api(upload_effect=NetworkFailure("boom", status_code=500))
        assets = _write_assets(tmp_path, "a.js", "b.js")
        config = _config(exhausted_retries=ExhaustedRetries.PROPAGATE)

        async with ReleaseOrchestrator(config, api=api) as orchestrator:
            result = await orchestrator.publish(tmp_path, assets=assets)

        assert result.state == ReleaseState.DONE
        assert result.success is False
        assert len(result.errors) == 2

    @pytest.mark.asyncio
    async def test_propagated_failures_downgraded_by_suppress_errors(self, tmp_path):
        api = _fake_api(upload_effect=NetworkFailure("boom", status_code=500))
        assets = _write_assets(tmp_path, "a.js")
        config = _config(exhausted_retries=ExhaustedRetries.PROPAGATE, suppress_errors=True)

        async with ReleaseOrchestrator(config, api=api) as orchestrator:
            result = await orchestrator.publish(tmp_path, assets=assets)

        # suppress_errors resolves the first failure without retrying
        assert api.upload_file.await_count == 1
        assert result.success is True
        assert result.outcomes[0].status == UploadStatus.SUPPRESSED

    @pytest.mark.asyncio
    async def test_one_file_failing_does_not_stop_others(self, tmp_path):
        def upload(version, path, name):
            if name == "~/bad.js":
                raise NetworkFailure("boom", status_code=500)

        api = _fake_api(upload_effect=upload)
        assets = _write_assets(tmp_path, "bad.js", "good1.js", "good2.js")

        async with ReleaseOrchestrator(_config(upload_concurrency=1), api=api) as orchestrator:
            result = await orchestrator.publish(tmp_path, assets=assets)

        assert result.uploaded_files == 2
        assert result.failed_files == 1
        assert len(result.outcomes) == 3

    @pytest.mark.asyncio
    async def test_unbuildable_upload_request_is_recorded(self, tmp_path):
        uploads = []

        def handler(request):
            if request.url.path.endswith("/files/"):
                uploads.append(request)
            return httpx.Response(201, json={})

        assets = _write_assets(tmp_path, "a.js")
        config = _config(upload_file_request_options={"headers": {"X-Note": "d\u00e9j\u00e0 \u20ac"}})
        async with ReleaseOrchestrator(config, transport=httpx.MockTransport(handler)) as orchestrator:
            result = await orchestrator.publish(tmp_path, assets=assets)

        assert uploads == []
        assert result.state == ReleaseState.DONE
        assert [o.status for o in result.outcomes] == [UploadStatus.FAILED]
        assert "gave up on ~/a.js" in result.warnings[0]

    @pytest.mark.asyncio
    async def test_unexpected_upload_error_is_recorded(self, tmp_path):
        api = _fake_api(upload_effect=RuntimeError("bug"))
        assets = _write_assets(tmp_path, "a.js")
        config = _config(exhausted_retries=ExhaustedRetries.PROPAGATE)

        async with ReleaseOrchestrator(config, api=api) as orchestrator:
            result = await orchestrator.publish(tmp_path, assets=assets)

        assert api.upload_file.await_count == 1
        assert result.state == ReleaseState.DONE
        assert result.failed_files == 1
        assert result.success is False
        assert "~/a.js" in result.errors[0]


class TestCleanup:
    @pytest.mark.asyncio
    async def test_deletes_source_maps_when_enabled(self, tmp_path):
        assets = _write_assets(tmp_path, "a.js", "a.js.map", "a.css")
        config = _config(delete_after_upload=True)

        async with ReleaseOrchestrator(config, api=_fake_api()) as orchestrator:
            result = await orchestrator.publish(tmp_path, assets=assets)

        assert result.deleted == [tmp_path / "a.js.map"]
        assert (tmp_path / "a.js").exists()
        assert (tmp_path / "a.css").exists()

    @pytest.mark.asyncio
    async def test_keeps_files_by_default(self, tmp_path):
        assets = _write_assets(tmp_path, "a.js.map")

        async with ReleaseOrchestrator(_config(), api=_fake_api()) as orchestrator:
            result = await orchestrator.publish(tmp_path, assets=assets)

        assert result.deleted == []
        assert (tmp_path / "a.js.map").exists()

    @pytest.mark.asyncio
    async def test_undeletable_file_becomes_warning(self, tmp_path):
        assets = _write_assets(tmp_path, "a.js", "a.js.map")
        (tmp_path / "old.map").mkdir()
        assets["old.map"] = tmp_path / "old.map"
        finished = Mock()

        async with ReleaseOrchestrator(_config(delete_after_upload=True), api=_fake_api()) as orchestrator:
            orchestrator.events.on("finish", finished)
            result = await orchestrator.publish(tmp_path, assets=assets)

        assert result.state == ReleaseState.DONE
        assert result.success is True
        assert result.deleted == [tmp_path / "a.js.map"]
        assert any(f"could not delete {tmp_path / 'old.map'}" in w for w in result.warnings)
        finished.assert_called_once_with(result)


class TestEvents:
    @pytest.mark.asyncio
    async def test_emits_lifecycle_events(self, tmp_path):
        assets = _write_assets(tmp_path, "a.js")
        state_changes, created, completed, finished = Mock(), Mock(), Mock(), Mock()

        async with ReleaseOrchestrator(_config(), api=_fake_api()) as orchestrator:
            orchestrator.events.on("state_change", state_changes)
            orchestrator.events.on("release_created", created)
            orchestrator.events.on("file_complete", completed)
            orchestrator.events.on("finish", finished)
            result = await orchestrator.publish(tmp_path, assets=assets)

        assert state_changes.call_count == 5
        assert created.call_args.args[0].version == "v1"
        assert completed.call_args.args[0].remote_name == "~/a.js"
        finished.assert_called_once_with(result)

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_run(self, tmp_path):
        assets = _write_assets(tmp_path, "a.js")

        async with ReleaseOrchestrator(_config(), api=_fake_api()) as orchestrator:
            orchestrator.events.on("file_complete", Mock(side_effect=ValueError("listener bug")))
            result = await orchestrator.publish(tmp_path, assets=assets)

        assert result.success is True
        assert result.uploaded_files == 1

    @pytest.mark.asyncio
    async def test_reports_selected_file_count(self, tmp_path):
        assets = _write_assets(tmp_path, "a.js", "a.js.map", "a.css")
        selected = Mock()

        async with ReleaseOrchestrator(_config(), api=_fake_api()) as orchestrator:
            orchestrator.events.on("files_selected", selected)
            await orchestrator.publish(tmp_path, assets=assets)

        selected.assert_called_once_with(2)
