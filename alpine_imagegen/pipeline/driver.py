"""Pipeline driver.

This module provides the high-level build API:
- run_pipeline(): Main entry point, runs every stage in order
- Target locking to prevent concurrent builds against one root
- Stage records and the JSON build manifest

Mounts acquired by a stage are released by an exit handler on the run's
ExitStack. A release failure after a successful run discards the archive;
after a failed run it is logged and attached to the stage error.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from types import TracebackType
from typing import Any

import httpx

from alpine_imagegen.buildconfig.schema import BuildConfiguration
from alpine_imagegen.config import Settings, get_settings
from alpine_imagegen.errors import ImageBuildError, MountError
from alpine_imagegen.package.archive import (
    generate_manifest,
    manifest_path_for,
    write_manifest,
)
from alpine_imagegen.pipeline.context import BuildContext, format_build_date
from alpine_imagegen.pipeline.stages import Stage, default_stages
from alpine_imagegen.rootfs.mounts import MountManager
from alpine_imagegen.rootfs.target import check_target_dir, target_lock
from alpine_imagegen.types import ArtifactInfo, StageRecord, StageStatus

logger = logging.getLogger(__name__)

LOCK_DIR_NAME = ".locks"


class StageFailedError(ImageBuildError):
    """Raised when a pipeline stage fails.

    Carries the failing stage name, the records of every stage that ran,
    and the code of the underlying error. release_error is set when the
    mounts could not be released afterwards.
    """

    def __init__(
        self,
        stage: str,
        cause: Exception,
        records: list[StageRecord],
    ) -> None:
        code = getattr(cause, "code", "stage_failed")
        super().__init__(f"Stage {stage} failed: {cause}", code=code)
        self.stage = stage
        self.cause = cause
        self.records = records
        self.release_error: MountError | None = None


@dataclass
class PipelineResult:
    """Outcome of a successful pipeline run."""

    build_date: str
    artifact: ArtifactInfo
    manifest_path: Path
    stages: list[StageRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "build_date": self.build_date,
            "artifact": {
                "filename": self.artifact.filename,
                "path": self.artifact.path,
                "size_bytes": self.artifact.size_bytes,
                "sha256": self.artifact.sha256,
            },
            "manifest_path": str(self.manifest_path),
            "stages": [_stage_summary(r) for r in self.stages],
        }


def _stage_summary(record: StageRecord) -> dict[str, Any]:
    summary: dict[str, Any] = {
        "name": record.name,
        "status": record.status.value,
        "duration_seconds": record.duration_seconds,
    }
    if record.error_message:
        summary["error"] = record.error_message
    return summary


def _run_stage(stage: Stage, ctx: BuildContext, record: StageRecord) -> None:
    """Run one stage and fill in its record.

    Raises:
        ImageBuildError: If a precondition fails or the stage raises.
        OSError: If the stage fails on a filesystem operation.
    """
    record.status = StageStatus.RUNNING
    record.started_at = datetime.now(timezone.utc)
    logger.info("Stage %s: starting", stage.name)

    try:
        stage.check_preconditions(ctx)
        outcome = stage.run(ctx)
    except Exception as e:
        record.status = StageStatus.FAILED
        record.finished_at = datetime.now(timezone.utc)
        record.error_message = str(e)
        logger.error("Stage %s failed: %s", stage.name, e)
        raise

    record.finished_at = datetime.now(timezone.utc)
    if outcome is False:
        record.status = StageStatus.SKIPPED
        logger.info("Stage %s: skipped", stage.name)
    else:
        record.status = StageStatus.SUCCEEDED
        logger.info(
            "Stage %s: done in %.1fs", stage.name, record.duration_seconds or 0.0
        )


def _discard_artifact(ctx: BuildContext) -> None:
    if ctx.artifact is None:
        return
    archive_path = Path(ctx.artifact.path)
    logger.warning("Discarding %s", archive_path)
    archive_path.unlink(missing_ok=True)
    ctx.artifact = None


def _release_mounts(
    ctx: BuildContext,
    exc_type: type[BaseException] | None,
    exc: BaseException | None,
    tb: TracebackType | None,
) -> bool:
    """Exit handler releasing the chroot mounts when the run ends.

    On a successful run a release failure is the run's failure and the
    finished archive is removed. On a failed run the original error is
    kept; the release failure is logged and attached to it.

    Returns:
        False, so an exception from the run always propagates.
    """
    if ctx.mounts is None:
        return False

    try:
        ctx.mount_manager.release(ctx.root)
    except MountError as e:
        if exc is None:
            logger.error("Releasing mounts under %s failed: %s", ctx.root, e)
            _discard_artifact(ctx)
            raise
        logger.error(
            "Releasing mounts under %s after a failed run also failed: %s",
            ctx.root,
            e,
        )
        if isinstance(exc, StageFailedError):
            exc.release_error = e
        return False

    ctx.mounts = None
    return False


def run_pipeline(
    config: BuildConfiguration,
    settings: Settings | None = None,
    *,
    stages: Sequence[Stage] | None = None,
    mount_manager: MountManager | None = None,
    client: httpx.Client | None = None,
    build_date: str | None = None,
    output_dir: Path | None = None,
) -> PipelineResult:
    """Build the image described by config.

    Stages run strictly in order and the first failure halts the run.
    Nothing is rolled back and no archive is left behind on failure; the
    target root stays on disk for inspection.

    Args:
        config: Validated build configuration.
        settings: Host settings (uses defaults if not provided).
        stages: Stages to run (uses default_stages() if not provided).
        mount_manager: Mount manager (one reading /proc/mounts if not provided).
        client: HTTP client (a new one is created and closed if not provided).
        build_date: YYYYMMDD stamp (today if not provided).
        output_dir: Archive directory (settings.output_dir or cwd if not provided).

    Returns:
        PipelineResult describing the archive and stage records.

    Raises:
        PreconditionError: If the target directory is missing or locked.
        StageFailedError: If a stage fails.
        MountError: If the mounts cannot be released after a successful run;
            the archive is removed first.
    """
    if settings is None:
        settings = get_settings()
    if stages is None:
        stages = default_stages()
    if mount_manager is None:
        mount_manager = MountManager(timeout=settings.command_timeout)
    if build_date is None:
        build_date = format_build_date()
    if output_dir is None:
        output_dir = settings.output_dir or Path.cwd()

    check_target_dir(config.install_dir)

    records = [StageRecord(name=stage.name) for stage in stages]
    own_client = client is None
    if client is None:
        client = httpx.Client(follow_redirects=True)

    logger.info(
        "Building %s (%s) from %s, release %s, into %s",
        config.image_name,
        config.name,
        config.mirror,
        config.release,
        config.install_dir,
    )

    lock_dir = settings.workspace_dir / LOCK_DIR_NAME
    try:
        with target_lock(lock_dir, config.install_dir):
            ctx = BuildContext(
                config=config,
                settings=settings,
                build_date=build_date,
                mount_manager=mount_manager,
                client=client,
                output_dir=output_dir.absolute(),
            )
            with ctx.resources:
                ctx.resources.push(partial(_release_mounts, ctx))
                for stage, record in zip(stages, records):
                    try:
                        _run_stage(stage, ctx, record)
                    except (ImageBuildError, OSError, ValueError) as e:
                        raise StageFailedError(stage.name, e, records) from e
    finally:
        if own_client:
            client.close()

    if ctx.artifact is None:
        raise ImageBuildError("Pipeline finished without producing an archive")

    manifest = generate_manifest(
        ctx.artifact,
        build_inputs=config.model_dump(mode="json"),
        stages=[_stage_summary(r) for r in records],
    )
    manifest["build_date"] = build_date
    manifest_path = write_manifest(
        manifest, manifest_path_for(Path(ctx.artifact.path))
    )

    logger.info("Build complete: %s", ctx.artifact.path)
    return PipelineResult(
        build_date=build_date,
        artifact=ctx.artifact,
        manifest_path=manifest_path,
        stages=records,
    )


__all__ = ["PipelineResult", "StageFailedError", "run_pipeline"]
