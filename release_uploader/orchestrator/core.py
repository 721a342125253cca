"""Core orchestrator - publishes a release and attaches its files."""
import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Set, Tuple

import httpx

from ..errors import ConfigurationError, NetworkFailure, ReleaseUploaderError
from ..models import (
    ExhaustedRetries,
    ReleaseConfig,
    ReleaseDescriptor,
    ReleaseResult,
    ReleaseState,
)
from ..protocols import IReleaseAPI
from ..services.api_client import HTTPRequestExecutor, ReleaseAPIClient
from ..services.cleanup import delete_matching
from ..services.file_selection import FileCollector
from ..utils.events import EventEmitter
from .models import FileUploadTask, OutcomeLog
from .pool import UploadPool
from .retry import RetryingUploader

logger = logging.getLogger(__name__)

MESSAGE_PREFIX = "Release upload"

# Every state has one success edge and at most one failure edge.
TRANSITIONS: Dict[ReleaseState, Set[ReleaseState]] = {
    ReleaseState.IDLE: {ReleaseState.VALIDATING_CONFIG},
    ReleaseState.VALIDATING_CONFIG: {ReleaseState.CREATING_RELEASE, ReleaseState.FAILED},
    ReleaseState.CREATING_RELEASE: {ReleaseState.UPLOADING_FILES, ReleaseState.FAILED},
    ReleaseState.UPLOADING_FILES: {ReleaseState.CLEANING_UP},
    ReleaseState.CLEANING_UP: {ReleaseState.DONE},
    ReleaseState.DONE: set(),
    ReleaseState.FAILED: set(),
}


class ReleaseOrchestrator:
    """
    Publishes one release: validate config, create the release, upload the
    selected files through a bounded pool, then optionally clean up.

    Failures are never raised to the caller. ``publish`` returns a
    ReleaseResult whose ``errors`` and ``warnings`` lists are the two
    signals a build tool needs (fail the build vs. report and continue).

    Usage:
        config = ReleaseConfig(organization="acme", project="web",
                               api_key=token, release="v1")
        async with ReleaseOrchestrator(config) as orchestrator:
            orchestrator.events.on("file_complete", print)
            result = await orchestrator.publish(Path("dist"))

        # With a pre-built API adapter (tests, custom transports)
        async with ReleaseOrchestrator(config, api=fake_api) as orchestrator:
            result = await orchestrator.publish(Path("dist"), assets={...})
    """

    def __init__(
        self,
        config: ReleaseConfig,
        api: Optional[IReleaseAPI] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize orchestrator with dependencies.

        Args:
            config: Release configuration
            api: Pre-built release API adapter; built from config when omitted
            transport: httpx transport for the default adapter
        """
        self._config = config
        self._external_api = api
        self._transport = transport
        self._executor: Optional[HTTPRequestExecutor] = None
        self._api: Optional[IReleaseAPI] = None
        self._state = ReleaseState.IDLE
        self.transitions: List[Tuple[ReleaseState, ReleaseState]] = []
        self.events = EventEmitter()

    async def __aenter__(self):
        if self._external_api is not None:
            self._api = self._external_api
        else:
            self._executor = HTTPRequestExecutor(
                timeout=self._config.timeout,
                transport=self._transport,
            )
            await self._executor.__aenter__()
            self._api = ReleaseAPIClient(self._executor, self._config)
        return self

    async def __aexit__(self, *args):
        if self._executor:
            await self._executor.__aexit__(*args)
            self._executor = None

    @property
    def state(self) -> ReleaseState:
        return self._state

    @property
    def config(self) -> ReleaseConfig:
        return self._config

    async def publish(
        self,
        output_dir: Path,
        assets: Optional[Mapping[str, Path]] = None,
        build_hash: Optional[str] = None,
    ) -> ReleaseResult:
        """
        Run the whole release workflow once.

        Args:
            output_dir: Build output directory (used for discovery and cleanup)
            assets: Asset name -> path map; discovered from output_dir when omitted
            build_hash: Passed to a callable ``release`` option

        Returns:
            ReleaseResult with terminal state, outcomes, warnings and errors
        """
        if self._api is None:
            raise RuntimeError("ReleaseOrchestrator not initialized. Use 'async with' context.")
        if self._state != ReleaseState.IDLE:
            raise RuntimeError(f"ReleaseOrchestrator already ran (state: {self._state.value})")

        config = self._config
        result = ReleaseResult(state=self._state)

        await self._transition(ReleaseState.VALIDATING_CONFIG)
        try:
            config.validate()
            descriptor = ReleaseDescriptor.build(
                config.resolve_version(build_hash),
                config.projects,
                config.release_body,
            )
        except ConfigurationError as exc:
            return await self._fail(result, exc)
        result.version = descriptor.version

        await self._transition(ReleaseState.CREATING_RELEASE)
        try:
            await self._api.create_release(descriptor)
        except NetworkFailure as exc:
            return await self._fail(result, exc)
        logger.info(f"Created release {descriptor.version}")
        await self.events.emit("release_created", descriptor)

        await self._transition(ReleaseState.UPLOADING_FILES)
        output_dir = Path(output_dir)
        if assets is None:
            assets = FileCollector.collect_assets(output_dir)
        selected = FileCollector.select(assets, config.include, config.exclude)
        tasks = [
            FileUploadTask(source_path=path, remote_name=config.filename_transform(name), asset_name=name)
            for name, path in selected.items()
        ]

        await self.events.emit("files_selected", len(tasks))

        outcomes = OutcomeLog()
        uploader = RetryingUploader(
            self._upload_callable(descriptor.version),
            config.policy,
            outcomes,
            max_attempts=config.max_attempts,
            retry_backoff=config.retry_backoff,
            events=self.events,
        )
        await UploadPool(uploader.upload, config.upload_concurrency).run(tasks)
        result.outcomes = list(outcomes.entries)
        self._report_outcomes(result, outcomes)
        logger.info(
            f"File uploads complete: {len(outcomes.succeeded)} uploaded, "
            f"{len(outcomes.suppressed)} suppressed, {len(outcomes.exhausted)} failed"
        )

        await self._transition(ReleaseState.CLEANING_UP)
        if config.delete_after_upload:
            result.deleted, failed = delete_matching(output_dir, list(assets), config.delete_pattern)
            for path, exc in failed:
                result.warnings.append(f"{MESSAGE_PREFIX}: could not delete {path}: {exc}")

        await self._transition(ReleaseState.DONE)
        result.state = self._state
        await self.events.emit("finish", result)
        return result

    def _upload_callable(self, version: str):
        api = self._api

        async def upload(task: FileUploadTask):
            return await api.upload_file(version, task.source_path, task.remote_name)

        return upload

    async def _transition(self, new_state: ReleaseState) -> None:
        old_state = self._state
        if new_state not in TRANSITIONS[old_state]:
            raise RuntimeError(f"Invalid transition {old_state.value} -> {new_state.value}")
        self._state = new_state
        self.transitions.append((old_state, new_state))
        logger.debug(f"Release state: {old_state.value} -> {new_state.value}")
        await self.events.emit("state_change", old_state, new_state)

    async def _fail(self, result: ReleaseResult, error: ReleaseUploaderError) -> ReleaseResult:
        await self._transition(ReleaseState.FAILED)
        result.state = self._state
        self._report(result, error, f"{MESSAGE_PREFIX}: {error}")
        await self.events.emit("finish", result)
        return result

    def _report(self, result: ReleaseResult, error: Exception, message: str, force_warning: bool = False) -> None:
        if force_warning or self._config.policy.suppresses(error):
            logger.warning(message)
            result.warnings.append(message)
        else:
            logger.error(message)
            result.errors.append(message)

    def _report_outcomes(self, result: ReleaseResult, outcomes: OutcomeLog) -> None:
        for outcome in outcomes.suppressed:
            result.warnings.append(
                f"{MESSAGE_PREFIX}: {outcome.remote_name} failed (suppressed): {outcome.error}"
            )

        propagate = self._config.policy.exhausted_retries == ExhaustedRetries.PROPAGATE
        for outcome in outcomes.exhausted:
            message = (
                f"{MESSAGE_PREFIX}: gave up on {outcome.remote_name} "
                f"after {outcome.attempts} attempts: {outcome.error}"
            )
            error = NetworkFailure(outcome.error or "upload failed", status_code=outcome.status_code)
            self._report(result, error, message, force_warning=not propagate)
